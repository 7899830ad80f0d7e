"""Generate shareable short links for files of VLESS connection lines.

Usage:
    keyserver-links generate vless.txt https://keys.example.com
    keyserver-links folder --tools-dir tools
"""

import argparse
import sys
import urllib.parse
from collections.abc import Iterable
from pathlib import Path

from .config import settings
from .links import LinkTemplate
from .resolver import ConnectionLine, resolve
from .sources import load_link_template, read_json_safe, read_text_lines

DEFAULT_BASE_URL = "http://localhost:8000"
DEFAULT_OUTPUT_EXTENSION = ".links.txt"


def build_short_links(
    lines: Iterable[str], base_url: str, template: LinkTemplate | None = None
) -> list[str]:
    """Resolve connection lines to slugs and turn them into ``/k/<slug>`` URLs.

    Slugs match the server's only when ``template`` carries the same slug
    prefix the server was started with.
    """
    base = base_url.rstrip("/")
    links = resolve((ConnectionLine(line) for line in lines), template)
    return [f"{base}/k/{urllib.parse.quote(slug, safe='')}" for slug in links]


def generate_links(
    input_path: Path,
    base_url: str,
    output_path: Path,
    template: LinkTemplate | None = None,
) -> list[str]:
    """Write one short link per connection line of ``input_path``."""
    links = build_short_links(read_text_lines(input_path), base_url, template)
    output_path.write_text("\n".join(links) + "\n", encoding="utf-8")
    return links


def load_folder_config(tools_dir: Path) -> dict:
    """Read ``config.json`` from the tools directory over the defaults."""
    config = {
        "baseUrl": settings.base_url or DEFAULT_BASE_URL,
        "outputExtension": DEFAULT_OUTPUT_EXTENSION,
    }
    file_config = read_json_safe(tools_dir / "config.json", {})
    if isinstance(file_config, dict):
        config.update(file_config)
    return config


def process_folder(
    tools_dir: Path, template: LinkTemplate | None = None
) -> dict[Path, int]:
    """Convert every ``inbox/*.txt`` file into an ``outbox`` link file.

    Each input file is resolved on its own, so slugs only need to be
    unique within one file.

    Returns:
        Mapping of written output path to the number of links in it
    """
    inbox = tools_dir / "inbox"
    outbox = tools_dir / "outbox"
    inbox.mkdir(parents=True, exist_ok=True)
    outbox.mkdir(parents=True, exist_ok=True)

    config = load_folder_config(tools_dir)
    extension = config.get("outputExtension") or DEFAULT_OUTPUT_EXTENSION
    base_url = config.get("baseUrl") or ""

    results = {}
    for source in sorted(inbox.iterdir()):
        if not source.is_file() or source.suffix.lower() != ".txt":
            continue
        output_path = outbox / f"{source.stem}{extension}"
        links = generate_links(source, base_url, output_path, template)
        results[output_path] = len(links)
    return results


def parse_args(argv: list[str] | None = None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(
        prog="keyserver-links",
        description="Generate short links for VLESS connection lines",
    )
    subparsers = parser.add_subparsers(dest="command", required=True)

    generate = subparsers.add_parser(
        "generate", help="Convert one file of vless:// lines into short links"
    )
    generate.add_argument("input", type=Path, help="File with one vless:// link per line")
    generate.add_argument(
        "base_url",
        nargs="?",
        default=settings.base_url or DEFAULT_BASE_URL,
        help="Public base URL of the key server",
    )
    generate.add_argument(
        "-o", "--output", type=Path, default=Path("links.txt"), help="Output file"
    )

    folder = subparsers.add_parser(
        "folder", help="Convert every .txt file in <tools-dir>/inbox"
    )
    folder.add_argument(
        "--tools-dir", type=Path, default=Path("tools"), help="Tools directory"
    )

    return parser.parse_args(argv)


def main(argv: list[str] | None = None) -> int:
    """Entry point for the ``keyserver-links`` command."""
    args = parse_args(argv)
    template = load_link_template(settings)

    if args.command == "generate":
        if not args.input.is_file():
            print(f"Input file not found: {args.input}", file=sys.stderr)
            return 1
        links = generate_links(args.input, args.base_url, args.output, template)
        for link in links:
            print(link)
        print(
            f"\nGenerated {len(links)} links. Saved to {args.output}", file=sys.stderr
        )
        return 0

    results = process_folder(args.tools_dir, template)
    if not results:
        print(f"Place .txt files with VLESS lines into {args.tools_dir / 'inbox'} and rerun.")
        return 0
    for output_path, count in results.items():
        print(f"Processed -> {output_path} ({count} links)")
    return 0


if __name__ == "__main__":
    sys.exit(main())
