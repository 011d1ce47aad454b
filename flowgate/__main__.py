"""진입점: python -m flowgate"""

from __future__ import annotations

import argparse
import asyncio


def main() -> None:
    """flowgate CLI 진입점. 설정을 로드하고 애플리케이션을 실행한다."""
    parser = argparse.ArgumentParser(
        prog="flowgate",
        description="flowgate - goflow2 flow record classifier and InfluxDB writer",
    )
    parser.add_argument(
        "-c", "--config",
        default=None,
        help="Path to configuration YAML file (default: config/default.yaml)",
    )
    parser.add_argument(
        "-i", "--input",
        default=None,
        help="Read flow lines from this file instead of the configured source ('-' for stdin)",
    )
    args = parser.parse_args()

    from flowgate.utils.config import Config
    from flowgate.app import FlowGate

    config = Config.load(args.config)
    if args.input is not None:
        config = Config.from_dict(
            config.raw, {"input": {"type": "file", "path": args.input}},
        )
    app = FlowGate(config)

    try:
        asyncio.run(app.run())
    except KeyboardInterrupt:
        pass


if __name__ == "__main__":
    main()
