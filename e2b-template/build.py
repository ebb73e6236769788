#!/usr/bin/env python3
"""Build the production analysis template."""

from pathlib import Path
from dotenv import load_dotenv

# Load .env from parent directory
load_dotenv(Path(__file__).parent.parent / ".env")

from e2b import Template, default_build_logger
from template import ANALYSIS_PACKAGES, template


TEMPLATE_ALIAS = "next-analyst"


if __name__ == "__main__":
    print("=" * 60)
    print(f"  Building E2B template: {TEMPLATE_ALIAS}")
    print("=" * 60)
    print()
    print("The template extends the code interpreter with:")
    for package in ANALYSIS_PACKAGES:
        print(f"  - {package}")
    print()

    Template.build(
        template,
        alias=TEMPLATE_ALIAS,
        on_build_logs=default_build_logger(),
    )

    print()
    print("=" * 60)
    print(f"  Template '{TEMPLATE_ALIAS}' built successfully!")
    print("=" * 60)
    print(f"  Set E2B_TEMPLATE={TEMPLATE_ALIAS} in .env to use it.")
