#!/usr/bin/env python3
"""
CLI Script for Document Ingestion.

Loads documents, chunks them and indexes them against a draft so they can
be searched during the drafting conversation.

Usage:
    python scripts/ingest.py --draft 42 --file path/to/assessment.pdf --category assessment
    python scripts/ingest.py --draft 42 --dir path/to/documents/
"""

import argparse
import sys
from pathlib import Path

# Add project root to path
sys.path.insert(0, str(Path(__file__).parent.parent))

from rich.console import Console
from rich.table import Table

from app.config import get_settings
from app.dependencies import Services, build_services, new_document_id
from src.ingestion import DocumentLoaderError, DocumentType, LoadedDocument
from src.knowledge import VectorStoreError
from src.utils.logger import get_logger, setup_logging

console = Console()
logger = get_logger(__name__)

SUPPORTED_SUFFIXES = {f".{t.value}" for t in DocumentType}


def ingest_file(services: Services, file_path: Path, draft_id: int, category: str) -> bool:
    """
    Load, chunk and index a single file.

    Returns:
        True if the document was indexed
    """
    console.print(f"\n[bold blue]Processing:[/] {file_path.name}")

    try:
        with console.status("[bold green]Loading document..."):
            loaded = services.loader.load(
                file_path,
                draft_id=draft_id,
                document_id=new_document_id(),
                category=category,
            )

        if not loaded.success:
            console.print(f"[bold red]✗[/] No text could be extracted from {file_path.name}")
            return False

        with console.status("[bold green]Indexing chunks..."):
            services.vector_store.add_chunks(loaded.chunks)

    except (DocumentLoaderError, VectorStoreError) as e:
        console.print(f"[bold red]✗[/] Failed to process {file_path.name}: {e}")
        logger.exception(f"Ingestion failed for {file_path}")
        return False

    _display_results(loaded)
    console.print(f"[bold green]✓[/] Indexed {file_path.name}")
    return True


def _display_results(loaded: LoadedDocument) -> None:
    """Display loading results in a table."""
    meta_table = Table(title="Document Metadata")
    meta_table.add_column("Property", style="cyan")
    meta_table.add_column("Value", style="green")

    meta_table.add_row("Filename", loaded.metadata.file_name)
    meta_table.add_row("Document ID", str(loaded.metadata.document_id))
    meta_table.add_row("Draft", str(loaded.metadata.draft_id))
    meta_table.add_row("Category", loaded.metadata.category)
    meta_table.add_row("Type", loaded.metadata.document_type.value)
    meta_table.add_row("Characters", str(loaded.metadata.num_chars))
    meta_table.add_row("Chunks", str(len(loaded.chunks)))

    console.print(meta_table)

    if loaded.chunks:
        console.print("\n[bold]Sample Chunk (first 200 chars):[/]")
        console.print(f"[dim]{loaded.chunks[0].content[:200]}...[/dim]")


def main() -> None:
    """Main entry point."""
    parser = argparse.ArgumentParser(
        description="Index documents for a tax opinion draft"
    )
    parser.add_argument(
        "--draft",
        type=int,
        required=True,
        help="Draft the documents belong to",
    )
    parser.add_argument(
        "--file", "-f",
        type=Path,
        help="Path to a single .txt, .md or .pdf file",
    )
    parser.add_argument(
        "--dir", "-d",
        type=Path,
        help="Path to a directory of documents",
    )
    parser.add_argument(
        "--category", "-c",
        default="general",
        help="Document category, e.g. assessment or correspondence",
    )
    parser.add_argument(
        "--log-level",
        default="INFO",
        choices=["DEBUG", "INFO", "WARNING", "ERROR"],
        help="Logging level",
    )

    args = parser.parse_args()

    setup_logging(args.log_level)

    if not args.file and not args.dir:
        parser.error("Must specify --file or --dir")

    console.print("[bold]Opinion Drafting Assistant - Ingestion[/]")
    console.print("=" * 50)

    services = build_services(get_settings())

    if args.file:
        if not args.file.exists():
            console.print(f"[red]File not found: {args.file}[/red]")
            sys.exit(1)
        files = [args.file]
    else:
        if not args.dir.is_dir():
            console.print(f"[red]Directory not found: {args.dir}[/red]")
            sys.exit(1)
        files = sorted(p for p in args.dir.iterdir() if p.suffix.lower() in SUPPORTED_SUFFIXES)
        console.print(f"Found {len(files)} documents")

    indexed = sum(ingest_file(services, path, args.draft, args.category) for path in files)

    console.print(f"\n[bold]{indexed}/{len(files)} documents indexed for draft {args.draft}[/]")
    if indexed < len(files):
        sys.exit(1)


if __name__ == "__main__":
    main()
