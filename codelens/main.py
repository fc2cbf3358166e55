#!/usr/bin/env python3
"""
codelens command line entry point.

Reads a serialized CodeGraph (JSON) and renders views, reports anomalies,
prints the flow digest or regenerates heuristic flows.
"""

import asyncio
import argparse
import json
import sys
from pathlib import Path
from typing import List, Optional

from pydantic import ValidationError

from .analysis.anomaly_detector import AnomalyDetector
from .errors import GraphFileError
from .flow.flow_service import FlowService
from .flow.summary_builder import FlowSummaryBuilder
from .graph.store import GraphStore
from .render.mermaid_renderer import MermaidRenderer
from .types import CodeGraph, DepthRange, ViewLens
from .utils.logger import app_logger, setup_logging
from .config import settings


def load_graph(path: str) -> CodeGraph:
    """Load a graph file, raising GraphFileError when it is unreadable or invalid."""
    try:
        text = Path(path).read_text(encoding="utf-8")
    except (OSError, UnicodeDecodeError) as e:
        raise GraphFileError(f"Cannot read graph file {path}: {e}") from e
    try:
        return CodeGraph.model_validate_json(text)
    except ValidationError as e:
        raise GraphFileError(f"Invalid graph file {path}: {e.error_count()} validation errors") from e


def save_graph(graph: CodeGraph, path: str):
    Path(path).write_text(graph.model_dump_json(indent=2), encoding="utf-8")


def find_lens(graph: CodeGraph, key: Optional[str]) -> Optional[ViewLens]:
    """Resolve a lens by id, name or type; the active lens when no key is given."""
    if not key:
        return graph.active_lens or (graph.lenses[0] if graph.lenses else None)
    for lens in graph.lenses:
        if key in (lens.id, lens.type.value) or key.lower() == lens.name.lower():
            return lens
    return None


def _emit(text: str, output: Optional[str]):
    if output:
        Path(output).write_text(text + "\n", encoding="utf-8")
        app_logger.info(f"Wrote {output}")
    else:
        print(text)


def cmd_render(args) -> int:
    graph = load_graph(args.graph)
    lens = find_lens(graph, args.lens)
    if lens is None:
        app_logger.error(f"Lens not found: {args.lens}")
        return 1

    depth_range = None
    if args.min_depth is not None or args.max_depth is not None:
        depth_range = DepthRange(min=args.min_depth, max=args.max_depth)

    text = MermaidRenderer().render(graph, lens, args.focus, depth_range)
    _emit(text, args.output)
    return 0


def cmd_anomalies(args) -> int:
    graph = load_graph(args.graph)
    detector = AnomalyDetector(args.coupling_threshold, args.god_threshold)
    anomalies = detector.detect(graph)

    if args.json:
        print(json.dumps([a.to_dict() for a in anomalies], indent=2))
    else:
        for anomaly in anomalies:
            print(f"[{anomaly.severity.value}] {anomaly.type.value}: {anomaly.message}")
        app_logger.info(f"{len(anomalies)} anomalies found")
    return 2 if args.strict and anomalies else 0


def cmd_summary(args) -> int:
    graph = load_graph(args.graph)
    summary = FlowSummaryBuilder().build(graph, args.scope)
    _emit(summary.model_dump_json(indent=2), args.output)
    return 0


def cmd_flows(args) -> int:
    graph = load_graph(args.graph)
    service = FlowService()
    result = asyncio.run(service.generate(graph, scope_node_id=args.scope))
    for warning in result.warnings:
        app_logger.warning(warning)

    for flow in result.flows:
        print(f"{flow.name}: {' -> '.join(step.label for step in flow.steps)}")

    if args.write:
        save_graph(service.merge(graph, result, replace=not args.append), args.write)
        app_logger.info(f"Wrote {len(result.flows)} flows to {args.write}")
    return 0


def cmd_stats(args) -> int:
    graph = load_graph(args.graph)
    print(json.dumps(GraphStore().get_stats(graph), indent=2))
    return 0


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(prog="codelens", description="Code graph views, anomalies and flows")
    parser.add_argument("--log-level", default=settings.log_level, help="Log level")
    subparsers = parser.add_subparsers(dest="command", required=True)

    render = subparsers.add_parser("render", help="Render a lens view as Mermaid")
    render.add_argument("graph", help="Graph JSON file")
    render.add_argument("--lens", help="Lens id, name or type (default: active lens)")
    render.add_argument("--focus", help="Focus node id")
    render.add_argument("--min-depth", type=int)
    render.add_argument("--max-depth", type=int)
    render.add_argument("-o", "--output", help="Write to file instead of stdout")
    render.set_defaults(func=cmd_render)

    anomalies = subparsers.add_parser("anomalies", help="Report structural anomalies")
    anomalies.add_argument("graph", help="Graph JSON file")
    anomalies.add_argument("--json", action="store_true", help="Emit JSON")
    anomalies.add_argument("--strict", action="store_true", help="Exit with status 2 when anomalies exist")
    anomalies.add_argument("--coupling-threshold", type=int)
    anomalies.add_argument("--god-threshold", type=int)
    anomalies.set_defaults(func=cmd_anomalies)

    summary = subparsers.add_parser("summary", help="Print the flow digest as JSON")
    summary.add_argument("graph", help="Graph JSON file")
    summary.add_argument("--scope", help="Module node id")
    summary.add_argument("-o", "--output", help="Write to file instead of stdout")
    summary.set_defaults(func=cmd_summary)

    flows = subparsers.add_parser("flows", help="Derive runtime flows from graph structure")
    flows.add_argument("graph", help="Graph JSON file")
    flows.add_argument("--scope", help="Module node id")
    flows.add_argument("--write", help="Write the graph with merged flows to this file")
    flows.add_argument("--append", action="store_true", help="Keep existing flows when writing")
    flows.set_defaults(func=cmd_flows)

    stats = subparsers.add_parser("stats", help="Count nodes and relations")
    stats.add_argument("graph", help="Graph JSON file")
    stats.set_defaults(func=cmd_stats)

    return parser


def main(argv: Optional[List[str]] = None) -> int:
    """Main entry point for the CLI."""
    args = build_parser().parse_args(argv)

    if args.log_level != settings.log_level:
        setup_logging(args.log_level, settings.log_file)

    try:
        return args.func(args)
    except GraphFileError as e:
        app_logger.error(str(e))
        return 1


if __name__ == "__main__":
    sys.exit(main())
