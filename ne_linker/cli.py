import argparse
import json
import logging
from pathlib import Path

from ne_linker.config import LinkerConfig
from ne_linker.pipeline import LinkingPipeline


def main():
    parser = argparse.ArgumentParser(description="Link tagged entity spans to knowledge bases.")
    parser.add_argument(
        "--config",
        type=str,
        required=True,
        help="Path to linker config JSON file.",
    )
    parser.add_argument(
        "--input",
        type=str,
        nargs="+",
        required=True,
        help="Input file paths.",
    )
    parser.add_argument(
        "--output",
        type=str,
        help="Optional JSONL output path.",
    )
    parser.add_argument(
        "--log",
        type=str,
        default="WARNING",
        choices=["DEBUG", "INFO", "WARNING", "ERROR"],
        help="Set the logging level",
    )
    args = parser.parse_args()

    logging.basicConfig(level=args.log)

    config_data = json.loads(Path(args.config).read_text(encoding="utf-8"))
    config = LinkerConfig.from_dict(config_data)

    pipeline = LinkingPipeline(config)
    results = pipeline.run(args.input, output_path=args.output)

    if not args.output:
        for result in results:
            print(json.dumps(result))


if __name__ == "__main__":
    main()
