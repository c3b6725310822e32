"""
Write a .gemini/GEMINI.md configuration into a repository.

    autopr-setup-gemini [path] [--project-name NAME] [--tech-stack React Node.js]
                        [--category ...] [--difficulty ...] [--analysis-file report.json]

Without --project-name the generic default rules are written.
"""

import argparse
import json
import logging
import sys
from pathlib import Path

from .implementation.gemini_config import ProjectContext, write_gemini_config
from .logging_config import setup_logging

logger = logging.getLogger(__name__)


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="autopr-setup-gemini",
        description="Create or refresh the Gemini CLI configuration for a repository",
    )
    parser.add_argument("path", nargs="?", default=".", help="Repository root (default: current directory)")
    parser.add_argument("--project-name", help="Render project-specific rules for this project")
    parser.add_argument("--category", help="Project category, e.g. 'Web Development'")
    parser.add_argument("--difficulty", help="Beginner | Intermediate | Advanced")
    parser.add_argument("--tech-stack", nargs="*", default=[], help="Technologies used, e.g. React Node.js")
    parser.add_argument("--analysis-file", type=Path, help="JSON file with an AI analysis report")
    return parser


def load_analysis(path: Path | None) -> dict | None:
    if path is None:
        return None
    data = json.loads(path.read_text(encoding="utf-8"))
    if not isinstance(data, dict):
        raise ValueError(f"{path} does not contain a JSON object")
    return data


def main(argv: list[str] | None = None) -> int:
    setup_logging()
    args = build_parser().parse_args(argv)

    target = Path(args.path)
    if not target.is_dir():
        logger.error(f"Not a directory: {target}")
        return 1

    try:
        analysis = load_analysis(args.analysis_file)
    except (OSError, ValueError) as e:
        logger.error(f"Could not read analysis file: {e}")
        return 1

    context = None
    if args.project_name:
        context = ProjectContext(
            project_name=args.project_name,
            category=args.category,
            difficulty=args.difficulty,
            tech_stack=args.tech_stack,
            analysis_data=analysis,
        )

    result = write_gemini_config(target, context)
    print(f"Gemini configuration written to {result.config_path}")
    if result.backup_path:
        print(f"Previous configuration backed up to {result.backup_path}")
    return 0


if __name__ == "__main__":
    sys.exit(main())
