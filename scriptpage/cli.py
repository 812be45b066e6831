from __future__ import annotations

import argparse
import logging
import sys
from typing import Any

import yaml

from .config import PagesConfig, load_config
from .errors import ScriptPageError
from .pages import Pages

logger = logging.getLogger("scriptpage")


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(prog="scriptpage", description="Render a scriptlet template.")
    parser.add_argument("template", type=str, help="Path to the template file")
    parser.add_argument("-c", "--context", type=str, default=None, help="YAML or JSON file passed as the render argument, '-' for stdin")
    parser.add_argument("--config", type=str, default=None, help="Path to YAML config file")
    parser.add_argument("-o", "--output", type=str, default="-", help="Output file path or '-' for stdout")
    parser.add_argument("--work-area", type=str, default=None, help="Directory for generated modules (overrides config)")
    parser.add_argument("-v", "--verbose", action="store_true", help="Log debug output")
    return parser


def _load_context(path: str | None) -> Any:
    if path is None:
        return None
    if path == "-":
        return yaml.safe_load(sys.stdin)
    with open(path, "r", encoding="utf-8") as f:
        return yaml.safe_load(f)


def main(argv: list[str] | None = None) -> int:
    args = build_parser().parse_args(argv)
    logging.basicConfig(
        level=logging.DEBUG if args.verbose else logging.INFO,
        stream=sys.stderr,
        format="%(asctime)s %(levelname)s %(name)s - %(message)s",
    )
    cfg: PagesConfig = load_config(args.config) if args.config else PagesConfig()
    # The positional template is the only one rendered
    overrides: dict[str, Any] = {"source_location": None}
    if args.work_area:
        overrides["work_area"] = args.work_area
    cfg = PagesConfig.model_validate({**cfg.model_dump(), **overrides})

    try:
        pages = Pages(config=cfg).load(args.template)
        rendered = pages.render(_load_context(args.context))
    except ScriptPageError as e:
        logger.error("%s", e)
        return 1
    except Exception:
        logger.exception("Rendering %s failed", args.template)
        return 1

    if args.output == "-":
        dst = sys.stdout
    else:
        dst = open(args.output, "w", encoding="utf-8")

    try:
        dst.write(rendered)
        return 0
    finally:
        if dst is not sys.stdout:
            dst.close()


if __name__ == "__main__":
    raise SystemExit(main())
