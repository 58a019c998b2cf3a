from __future__ import annotations
import argparse
import json
import sys
import logging
from dataclasses import asdict
from pathlib import Path
from typing import Any, List, Optional

import yaml

from market_adaptation.core.config import load_config
from market_adaptation.core.errors import ConfigError, StrategyNotFoundError, StrategyValidationError
from market_adaptation.engines.engine import MarketAdaptationEngine
from market_adaptation.log.replay import replay_snapshots
from market_adaptation.pipeline.stream import SnapshotPipeline

logger = logging.getLogger("market_adaptation.cli")

EXIT_MISSING_INPUT = 2


def _load_doc(path: str) -> Any:
    # YAML is a superset of JSON, so one loader covers both
    with open(path, "r", encoding="utf-8") as f:
        return yaml.safe_load(f)


def _as_list(doc: Any, key: str) -> List[Any]:
    if doc is None:
        return []
    if isinstance(doc, dict) and key in doc:
        doc = doc[key]
    if isinstance(doc, dict):
        return [doc]
    return list(doc)


def _dump(obj: Any) -> None:
    print(json.dumps(obj, indent=2, sort_keys=True))


def _missing_inputs(*paths: Optional[str]) -> List[str]:
    return [p for p in paths if p and not Path(p).is_file()]


def main(argv: Optional[List[str]] = None) -> int:
    p = argparse.ArgumentParser("market-adaptation")
    p.add_argument("--config", help="Adaptation config YAML (defaults to the packaged contract)")
    p.add_argument("--verbose", "-v", action="store_true", help="Verbose logging")
    sub = p.add_subparsers(dest="cmd", required=True)

    # detect patterns in one snapshot
    s_detect = sub.add_parser("detect", help="Detect patterns in a market snapshot")
    s_detect.add_argument("--snapshot", required=True, help="JSON/YAML file with {prices, volumes, timestamps, ...}")

    # register strategies and feed snapshots through the engine
    s_run = sub.add_parser("run", help="Feed snapshots to registered strategies and print adaptations")
    s_run.add_argument("--snapshots", required=True, help="JSON/YAML list of snapshots")
    s_run.add_argument("--strategies", required=True, help="JSON/YAML list of strategy specs")
    s_run.add_argument("--metrics", help="JSON/YAML mapping of strategy name -> performance metrics")
    s_run.add_argument("--history", type=int, default=0, help="Limit printed history (0 = all)")

    # deterministic replay fingerprint
    s_replay = sub.add_parser("replay", help="Classify snapshots and print the output fingerprint")
    s_replay.add_argument("--snapshots", required=True)

    sub.add_parser("show-config", help="Print the effective configuration")

    args = p.parse_args(argv)

    logging.basicConfig(
        level=logging.DEBUG if args.verbose else logging.INFO,
        format="%(asctime)s [%(levelname)s] %(name)s: %(message)s",
        handlers=[logging.StreamHandler(sys.stderr)],
    )

    missing = _missing_inputs(
        args.config,
        getattr(args, "snapshot", None),
        getattr(args, "snapshots", None),
        getattr(args, "strategies", None),
        getattr(args, "metrics", None),
    )
    if missing:
        print(f"Error: input file(s) not found: {', '.join(missing)}", file=sys.stderr)
        return EXIT_MISSING_INPUT

    try:
        config = load_config(args.config)
    except ConfigError as e:
        print(f"Error: invalid config: {e}", file=sys.stderr)
        return 1

    if args.cmd == "show-config":
        _dump({
            "source": config.source,
            "config_hash": config.config_hash,
            "classifier": asdict(config.classifier),
            "controller": asdict(config.controller),
            "retention": asdict(config.retention),
        })
        return 0

    if args.cmd == "detect":
        engine = MarketAdaptationEngine(config)
        patterns = engine.detect_patterns(_load_doc(args.snapshot))
        _dump([pat.to_payload() for pat in patterns])
        return 0

    if args.cmd == "replay":
        snapshots = _as_list(_load_doc(args.snapshots), "snapshots")
        res = replay_snapshots(snapshots, config)
        _dump(asdict(res))
        return 0

    if args.cmd == "run":
        pipeline = SnapshotPipeline(config=config)
        engine = pipeline.engine
        try:
            ids_by_name = {}
            for spec in _as_list(_load_doc(args.strategies), "strategies"):
                s = engine.add_adaptive_strategy(spec)
                ids_by_name[s.name] = s.id

            if args.metrics:
                metrics_doc = _load_doc(args.metrics) or {}
                pipeline.push_metrics({
                    ids_by_name.get(name, name): m for name, m in metrics_doc.items()
                })
        except (StrategyValidationError, StrategyNotFoundError) as e:
            print(f"Error: {e}", file=sys.stderr)
            return 1

        records = pipeline.process(_as_list(_load_doc(args.snapshots), "snapshots"))
        logger.info(f"Run complete: {len(records)} adaptation(s)")

        _dump({
            "strategies": [s.to_payload() for s in engine.get_adaptive_strategies()],
            "history": [r.to_payload() for r in engine.get_adaptation_history(args.history)],
            "summary": engine.get_adaptation_summary(),
        })
        return 0

    return 1


if __name__ == "__main__":
    sys.exit(main())
