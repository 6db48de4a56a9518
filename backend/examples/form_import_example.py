#!/usr/bin/env python3
"""
Form Import - Example Usage
===========================

This script imports a PDF form into an editable form structure, prints
the detected fields with their mapping suggestions and can render a
preview PDF filled with sample application data.

Usage:
    python examples/form_import_example.py path/to/form.pdf

Requirements:
    - Optional: GOOGLE_API_KEY or OPENAI_API_KEY (vision labels and AI mappings)
    - poppler installed for pdf2image (vision fallback only)
"""

import sys
import json
import argparse
import logging
from pathlib import Path

# Add parent directory to path for imports
sys.path.insert(0, str(Path(__file__).parent.parent))

from app.services.errors import ExtractionError, NoFieldsFound
from app.services.form_import import FormImportPipeline, create_provider_chain, get_application_fields_schema
from app.services.form_import.mapping_suggestions import MappingMethod
from app.services.form_structure import PREVIEW_SAMPLE_DATA
from app.services.rendering import render_document_pdf
from app.utils.rate_limiter import RateLimiter

# Configure logging
logging.basicConfig(
    level=logging.INFO,
    format='%(asctime)s - %(name)s - %(levelname)s - %(message)s'
)
logger = logging.getLogger(__name__)


def import_pdf(pdf_path: str, output_path: str = None, render_path: str = None, use_ai: bool = True):
    """
    Import a PDF form and print the result.

    Args:
        pdf_path: Path to the PDF file
        output_path: Optional path to save the JSON result
        render_path: Optional path to save a preview PDF filled with sample data
        use_ai: Whether to ask the AI provider for mapping suggestions
    """
    pdf_path = Path(pdf_path)
    if not pdf_path.exists():
        logger.error(f"File not found: {pdf_path}")
        return None

    with open(pdf_path, 'rb') as f:
        pdf_bytes = f.read()

    logger.info(f"Importing: {pdf_path.name} ({len(pdf_bytes):,} bytes)")

    rate_limiter = RateLimiter()
    pipeline = FormImportPipeline(provider=create_provider_chain(rate_limiter), use_ai=use_ai)

    try:
        result = pipeline.analyze(pdf_bytes, pdf_path.name)
    except (ExtractionError, NoFieldsFound) as e:
        print(f"\nImport failed: {e}")
        return None

    structure = result.form_structure

    print("\n" + "=" * 60)
    print("FORM IMPORT RESULTS")
    print("=" * 60)
    print(f"\nForm Title: {result.form_title}")
    print(f"Pages: {result.metadata.get('totalPages')}")
    print(f"Fields: {result.metadata.get('extractedFieldsCount')}")
    print(f"Vision: {result.metadata.get('visionStatus') or 'not used'}")

    print("\n" + "-" * 40)
    print("FIELDS")
    print("-" * 40)
    for section, field in structure.iter_fields():
        source = f" <- {field.data_source}" if field.data_source else ""
        print(f"  [{field.type.value:9}] {field.label:35} (pdf: {field.pdf_mapping}){source}")

    print("\n" + "-" * 40)
    print("MAPPING SUGGESTIONS")
    print("-" * 40)
    for suggestion in result.mapping_suggestions:
        review = " [review]" if suggestion.needs_review else ""
        ai = " [AI]" if suggestion.method != MappingMethod.RULE_BASED else ""
        print(f"  {suggestion.pdf_field:35} -> {suggestion.suggested_mapping:16} "
              f"(conf: {suggestion.confidence:.2f}){ai}{review}")

    stats = rate_limiter.get_stats()
    print(f"\nAI calls used: {stats['total_calls']}/{stats['max_calls']}")

    if output_path:
        output_data = result.to_dict()
        output_data['mappingSuggestions'] = [s.to_dict() for s in result.mapping_suggestions]
        with open(output_path, 'w') as f:
            json.dump(output_data, f, indent=2, default=str)
        logger.info(f"Output saved to: {output_path}")

    if render_path:
        pdf = render_document_pdf(structure, PREVIEW_SAMPLE_DATA, title=result.form_title)
        with open(render_path, 'wb') as f:
            f.write(pdf)
        logger.info(f"Preview PDF saved to: {render_path}")

    return result


def show_schema():
    """Print the application schema that fields are mapped onto."""
    print("\n" + "=" * 60)
    print("APPLICATION SCHEMA")
    print("=" * 60)
    for name, spec in get_application_fields_schema().items():
        allowed = f" one of {spec['enum']}" if spec.get('enum') else ""
        print(f"  • {name:16} [{spec['type']}] {spec['description']}{allowed}")


def main():
    parser = argparse.ArgumentParser(
        description='PDF Form Import',
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
    # Import a PDF and print results
    python form_import_example.py form.pdf

    # Save the result to JSON and render a preview PDF
    python form_import_example.py form.pdf -o result.json --render preview.pdf

    # Rule-based mappings only (no AI mapping calls)
    python form_import_example.py form.pdf --no-ai

    # Show the target application schema
    python form_import_example.py --schema
        """
    )

    parser.add_argument(
        'pdf_path',
        nargs='?',
        help='Path to PDF file to import'
    )

    parser.add_argument(
        '-o', '--output',
        help='Path to save JSON output'
    )

    parser.add_argument(
        '--render',
        help='Path to save a preview PDF filled with sample data'
    )

    parser.add_argument(
        '--no-ai',
        action='store_true',
        help='Skip AI mapping suggestions'
    )

    parser.add_argument(
        '--schema',
        action='store_true',
        help='Show the application schema and exit'
    )

    args = parser.parse_args()

    if args.schema:
        show_schema()
        return

    if not args.pdf_path:
        parser.print_help()
        print("\nError: Please provide a PDF path or use --schema")
        sys.exit(1)

    import_pdf(args.pdf_path, args.output, args.render, use_ai=not args.no_ai)


if __name__ == '__main__':
    main()
