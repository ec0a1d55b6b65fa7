"""Standard security handler (password-based decryption).

Supports revisions 2 to 6: RC4 with 40 to 128 bit keys, AES-128 crypt
filters (V4) and AES-256 (V5). Password checks, key derivation and the
per-object ciphers are pypdf's :class:`~pypdf._encryption.Encryption`; AES
needs the ``cryptography`` package. This module converts the engine's
objects to pypdf's and keeps the engine's error types.
"""

from __future__ import annotations

from dataclasses import dataclass
import logging
from typing import Any, Callable

from pypdf._encryption import _PADDING, Encryption, PasswordType
from pypdf.errors import DependencyError, PyPdfError
from pypdf.generic import (
    ArrayObject,
    BooleanObject,
    ByteStringObject,
    DictionaryObject,
    FloatObject,
    NameObject,
    NullObject,
    NumberObject,
    PdfObject,
)

from ..exceptions import InvalidPasswordError, UnsupportedEncryptionError
from .objects import PdfName, PdfRef, PdfString, as_int

__all__ = ["StandardSecurityHandler", "PASSWORD_PADDING", "crypt_filter_is_identity"]

_LOGGER = logging.getLogger(__name__)

PASSWORD_PADDING = _PADDING

_AES_MISSING = "AES encrypted documents need the 'cryptography' package"


def _identity(value: Any) -> Any:
    return value


def _to_pypdf(value: Any, resolve: Callable[[Any], Any]) -> PdfObject:
    value = resolve(value)
    if isinstance(value, PdfName):
        return NameObject(f"/{value}")
    if isinstance(value, bool):
        return BooleanObject(value)
    if isinstance(value, int):
        return NumberObject(value)
    if isinstance(value, float):
        return FloatObject(value)
    if isinstance(value, (bytes, bytearray)):
        return ByteStringObject(bytes(value))
    if isinstance(value, list):
        return ArrayObject(_to_pypdf(item, resolve) for item in value)
    if isinstance(value, dict):
        return DictionaryObject(
            {NameObject(f"/{key}"): _to_pypdf(item, resolve) for key, item in value.items()}
        )
    return NullObject()


@dataclass(slots=True)
class StandardSecurityHandler:
    """An authenticated pypdf ``Encryption`` plus what the document reader asks of it."""

    encryption: Encryption
    encrypt_metadata: bool = True
    authenticated_as: str = "user"

    @property
    def revision(self) -> int:
        return self.encryption.R

    # -- Construction ----------------------------------------------------------

    @classmethod
    def open(
        cls,
        encrypt: dict[str, Any],
        file_id: bytes,
        password: str | bytes | None = None,
        resolve: Callable[[Any], Any] = _identity,
    ) -> "StandardSecurityHandler":
        """Authenticate against ``/Encrypt`` and derive the file key.

        The empty user password is tried first, then ``password`` as owner and
        user password.
        """

        handler_name = resolve(encrypt.get("Filter"))
        if handler_name != "Standard":
            raise UnsupportedEncryptionError(f"Unsupported security handler: {handler_name!r}")

        version = as_int(resolve(encrypt.get("V")), 0) or 0
        revision = as_int(resolve(encrypt.get("R")), 0) or 0
        if version not in (1, 2, 4, 5) or revision not in (2, 3, 4, 5, 6):
            raise UnsupportedEncryptionError(f"Unsupported encryption V{version} R{revision}")

        try:
            encryption = Encryption.read(_to_pypdf(encrypt, resolve), file_id)
        except NotImplementedError as exc:
            raise UnsupportedEncryptionError(str(exc)) from exc
        except (KeyError, AttributeError, TypeError) as exc:
            raise UnsupportedEncryptionError(f"Malformed /Encrypt dictionary: {exc!r}") from exc

        candidates: list[str | bytes] = [b""]
        if password:
            candidates.append(password)
        try:
            for candidate in candidates:
                result = encryption.verify(candidate)
                if result != PasswordType.NOT_DECRYPTED:
                    role = "owner" if result == PasswordType.OWNER_PASSWORD else "user"
                    _LOGGER.debug("Authenticated as %s (V%d R%d)", role, version, revision)
                    return cls(
                        encryption=encryption,
                        encrypt_metadata=bool(encryption.EncryptMetadata),
                        authenticated_as=role,
                    )
        except DependencyError as exc:
            raise UnsupportedEncryptionError(_AES_MISSING) from exc
        if password is None:
            raise InvalidPasswordError("The document is encrypted and needs a password")
        raise InvalidPasswordError()

    # -- Decryption ------------------------------------------------------------

    def _decrypt(self, ref: PdfRef, data: bytes, *, stream: bool) -> bytes:
        crypt_filter = self.encryption._make_crypt_filter(ref.num, ref.gen)
        cipher = crypt_filter.stm_crypt if stream else crypt_filter.str_crypt
        try:
            return cipher.decrypt(data)
        except DependencyError as exc:
            raise UnsupportedEncryptionError(_AES_MISSING) from exc
        except (PyPdfError, ValueError) as exc:
            _LOGGER.warning("Object %s does not decrypt cleanly (%s)", ref, exc)
            return b""

    def decrypt_string(self, ref: PdfRef, data: bytes) -> PdfString:
        return PdfString(self._decrypt(ref, data, stream=False))

    def decrypt_stream(self, ref: PdfRef, data: bytes) -> bytes:
        return self._decrypt(ref, data, stream=True)

    def decrypt_object(self, ref: PdfRef, value: Any) -> Any:
        """Decrypt every string nested in ``value`` (streams are left alone)."""

        if isinstance(value, PdfString):
            return self.decrypt_string(ref, value)
        if isinstance(value, list):
            return [self.decrypt_object(ref, item) for item in value]
        if isinstance(value, dict):
            return {key: self.decrypt_object(ref, item) for key, item in value.items()}
        return value


def crypt_filter_is_identity(stream_dictionary: dict[str, Any]) -> bool:
    """True when a stream opts out of decryption through an Identity crypt filter."""

    filters = stream_dictionary.get("Filter")
    if isinstance(filters, PdfName):
        filters = [filters]
        parms = [stream_dictionary.get("DecodeParms")]
    else:
        parms = stream_dictionary.get("DecodeParms")
        if not isinstance(parms, list):
            parms = [parms]
    if not isinstance(filters, list):
        return False
    for index, name in enumerate(filters):
        if name == "Crypt":
            parm = parms[index] if index < len(parms) else None
            filter_name = parm.get("Name") if isinstance(parm, dict) else None
            return filter_name is None or filter_name == "Identity"
    return False
