"""
Command-line interface for pdftextx.
"""

import logging
import os
import sys
from dataclasses import asdict

import click
from rich.console import Console
from rich.markup import escape
from rich.table import Table

from pdftextx import __version__
from pdftextx.core.utils import configure_logging, format_file_size, read_pdf_bytes
from pdftextx.exceptions import PDFTextXError
from pdftextx.extractor import TextExtractor
from pdftextx.text.layout import FORMATS
from pdftextx.types import ExtractionOptions

console = Console()
error_console = Console(stderr=True)


def _fail(message):
    error_console.print(f"[bold red]✗ Error:[/bold red] {escape(str(message))}")
    sys.exit(1)


def _render(value, fmt):
    """Turn a formatted page into printable text."""

    if isinstance(value, str):
        return value
    if fmt == "words":
        return "\n".join(f"{word.x:.1f}\t{word.y:.1f}\t{word.text}" for word in value)
    if fmt == "lines":
        return "\n".join(line.text for line in value)
    return "\n\n".join(block.text for block in value)


@click.group()
@click.version_option(version=__version__)
def cli():
    """
    pdftextx - Count pages and extract text from PDF files.
    """
    pass


@cli.command(name="count")
@click.argument('input_pdf', type=click.Path(exists=True, dir_okay=False))
@click.option('--password', default=None, help='Password for encrypted PDFs')
def count(input_pdf, password):
    """
    Print the number of pages.

    Example:

        pdftextx count input.pdf
    """
    try:
        extractor = TextExtractor(ExtractionOptions(password=password))
        click.echo(extractor.page_count(read_pdf_bytes(input_pdf)))
    except (PDFTextXError, OSError) as e:
        _fail(e)


@cli.command(name="extract")
@click.argument('input_pdf', type=click.Path(exists=True, dir_okay=False))
@click.option('--output', '-o', default=None, type=click.Path(dir_okay=False), help='Write text to this file')
@click.option('--password', default=None, help='Password for encrypted PDFs')
@click.option('--separator', default='\n\n', show_default=repr('\n\n'), help='Text placed between pages')
@click.option('--format', 'fmt', default='text', type=click.Choice(FORMATS), show_default=True, help='Output format')
@click.option('--page', '-p', default=None, type=int, help='Only extract this page (1-indexed)')
@click.option('--workers', '-w', default=1, show_default=True, type=click.IntRange(min=1), help='Pages extracted in parallel')
@click.option('--no-forms', is_flag=True, help='Ignore text drawn by form XObjects')
@click.option('--verbose', '-v', is_flag=True, help='Log recoveries and per-page problems')
def extract(input_pdf, output, password, separator, fmt, page, workers, no_forms, verbose):
    """
    Extract text from a PDF.

    Examples:

        pdftextx extract input.pdf

        pdftextx extract input.pdf -o input.txt --workers 4

        pdftextx extract input.pdf --page 2 --format json
    """
    configure_logging(logging.DEBUG if verbose else logging.WARNING)
    options = ExtractionOptions(
        password=password,
        page_separator=separator.replace("\\n", "\n").replace("\\t", "\t"),
        max_workers=workers,
        include_form_xobjects=not no_forms,
    )
    extractor = TextExtractor(options)
    try:
        document = extractor.open(read_pdf_bytes(input_pdf))
        if page is not None:
            text = _render(extractor.extract_formatted(document, page - 1, fmt), fmt)
        elif fmt == "text":
            result = extractor.extract_pages(document)
            for number, reason in sorted(result.failures.items()):
                error_console.print(f"[yellow]Page {number} skipped:[/yellow] {escape(reason)}")
            text = result.text
        else:
            formatted, failures = extractor.extract_formatted_pages(document, fmt)
            for number, reason in sorted(failures.items()):
                error_console.print(f"[yellow]Page {number} skipped:[/yellow] {escape(reason)}")
            rendered = [_render(value, fmt) for value in formatted]
            if fmt == "json":
                text = "[\n" + ",\n".join(rendered) + "\n]"
            else:
                text = options.page_separator.join(rendered)
    except (PDFTextXError, OSError) as e:
        _fail(e)

    if output:
        with open(output, "w", encoding="utf-8") as handle:
            handle.write(text)
        error_console.print(f"[bold green]✓ Wrote text to[/bold green] {os.path.abspath(output)}")
    else:
        click.echo(text)


@cli.command(name="search")
@click.argument('input_pdf', type=click.Path(exists=True, dir_okay=False))
@click.argument('query')
@click.option('--ignore-case', '-i', is_flag=True, help='Match regardless of case')
@click.option('--page', '-p', default=None, type=int, help='Only search this page (1-indexed)')
@click.option('--password', default=None, help='Password for encrypted PDFs')
def search(input_pdf, query, ignore_case, page, password):
    """
    Find text and print where it occurs.

    Example:

        pdftextx search input.pdf "total" -i
    """
    extractor = TextExtractor(ExtractionOptions(password=password))
    try:
        data = read_pdf_bytes(input_pdf)
        if page is not None:
            matches = extractor.search_page(data, page - 1, query, ignore_case=ignore_case)
        else:
            matches = extractor.search(data, query, ignore_case=ignore_case)
    except (PDFTextXError, OSError) as e:
        _fail(e)

    if not matches:
        console.print(f"[yellow]No matches for[/yellow] {escape(query)}")
        return

    table = Table(title=f"{len(matches)} match(es) for {escape(query)}")
    for column in ("Page", "X", "Y"):
        table.add_column(column, justify="right", style="cyan")
    table.add_column("Context", style="green")
    for match in matches:
        table.add_row(str(match.page), f"{match.x:.1f}", f"{match.y:.1f}", escape(match.context))
    console.print(table)


@cli.command(name="fonts")
@click.argument('input_pdf', type=click.Path(exists=True, dir_okay=False))
@click.option('--page', '-p', default=None, type=int, help='Only list fonts of this page (1-indexed)')
@click.option('--password', default=None, help='Password for encrypted PDFs')
def fonts(input_pdf, page, password):
    """
    List the fonts each page uses.

    Example:

        pdftextx fonts input.pdf --page 1
    """
    extractor = TextExtractor(ExtractionOptions(password=password))
    try:
        data = read_pdf_bytes(input_pdf)
        if page is not None:
            found = extractor.extract_fonts(data, page - 1)
        else:
            found = [info for infos in extractor.extract_all_fonts(data).values() for info in infos]
    except (PDFTextXError, OSError) as e:
        _fail(e)

    table = Table(title=f"Fonts: {os.path.basename(input_pdf)}")
    for column in ("Page", "Resource", "Name", "Subtype", "Encoding", "Embedded"):
        table.add_column(column, style="cyan" if column == "Page" else None)
    for info in found:
        table.add_row(
            str(info.page),
            info.resource_name,
            info.name,
            info.subtype,
            info.encoding or "-",
            "Yes" if info.embedded else "No",
        )
    console.print(table)


@cli.command(name="info")
@click.argument('input_pdf', type=click.Path(exists=True, dir_okay=False))
@click.option('--password', default=None, help='Password for encrypted PDFs')
@click.option('--pages', 'show_pages', is_flag=True, help='Also list the size of every page')
def show_info(input_pdf, password, show_pages):
    """
    Display information about a PDF file.

    Example:

        pdftextx info input.pdf --pages
    """
    try:
        data = read_pdf_bytes(input_pdf)
        extractor = TextExtractor(ExtractionOptions(password=password))
        document = extractor.open(data)
        infos = extractor.page_infos(document)
    except (PDFTextXError, OSError) as e:
        _fail(e)

    table = Table(title=f"PDF Information: {os.path.basename(input_pdf)}")
    table.add_column("Property", style="cyan", no_wrap=True)
    table.add_column("Value", style="green")

    table.add_row("File Path", os.path.abspath(input_pdf))
    table.add_row("File Size", format_file_size(len(data)))
    table.add_row("PDF Version", document.version)
    table.add_row("Number of Pages", str(len(infos)))
    table.add_row("Encrypted", "Yes" if document.is_encrypted else "No")
    table.add_row("Recovered", "Yes" if document.recovered else "No")
    for key in ("Title", "Author", "Subject", "Creator", "Producer"):
        value = document.info.get(key)
        if value:
            table.add_row(key, value)

    console.print()
    console.print(table)

    if show_pages:
        pages_table = Table(title="Pages")
        for column in ("number", "width", "height", "rotation"):
            pages_table.add_column(column.capitalize(), justify="right")
        for info in infos:
            row = asdict(info)
            pages_table.add_row(str(row["number"]), f"{row['width']:.1f}", f"{row['height']:.1f}", str(row["rotation"]))
        console.print(pages_table)
    console.print()


if __name__ == "__main__":
    cli()
