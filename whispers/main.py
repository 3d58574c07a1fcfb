import argparse
import sys
from datetime import datetime
from typing import List, Optional

import pandas as pd

from . import config
from .config import Colours
from .models import Whisper
from .services import StoreError, WhisperService, create_store
from .utils.clustering import group_by_radius
from .utils.geo import haversine
from .utils.logging import setup_logging


def colourize_distance(metres: float, radius_m: float) -> str:
    """Close whispers in green, the edge of the radius in yellow."""
    colour = Colours.GREEN if metres <= radius_m / 2 else Colours.YELLOW
    return f"{colour}{metres:6.0f} m{Colours.RESET}"


def format_whisper(w: Whisper) -> str:
    when = datetime.fromtimestamp(w.created_at / 1000).strftime("%Y-%m-%d %H:%M")
    return f"{Colours.DIM}#{w.id} {when}{Colours.RESET} ({w.lat:.5f}, {w.lng:.5f}) {w.text}"


def whispers_frame(whispers: List[Whisper], radius_m: float) -> pd.DataFrame:
    """One row per whisper, tagged with the cluster it lands in."""
    rows = []
    for cluster_id, cluster in enumerate(group_by_radius(whispers, radius_m)):
        for w in cluster.whispers:
            rows.append(
                {
                    "id": w.id,
                    "text": w.text,
                    "lat": w.lat,
                    "lng": w.lng,
                    "created_at": pd.to_datetime(w.created_at, unit="ms", utc=True),
                    "cluster": cluster_id,
                    "cluster_lat": cluster.lat,
                    "cluster_lng": cluster.lng,
                }
            )
    columns = ["id", "text", "lat", "lng", "created_at", "cluster", "cluster_lat", "cluster_lng"]
    return pd.DataFrame(rows, columns=columns)


def cluster_summary(frame: pd.DataFrame) -> pd.DataFrame:
    if frame.empty:
        return pd.DataFrame(columns=["cluster", "whispers", "lat", "lng", "newest"])
    return (
        frame.groupby("cluster")
        .agg(
            whispers=("id", "count"),
            lat=("cluster_lat", "first"),
            lng=("cluster_lng", "first"),
            newest=("created_at", "max"),
        )
        .sort_values("whispers", ascending=False)
        .reset_index()
    )


# ----------------------------------------------------------------------
# Sub-commands
# ----------------------------------------------------------------------
def _cmd_list(service: WhisperService, args: argparse.Namespace) -> int:
    whispers = service.recent(args.limit)
    if not whispers:
        print("No whispers yet.")
    for w in whispers:
        print(format_whisper(w))
    return 0


def _cmd_post(service: WhisperService, args: argparse.Namespace) -> int:
    whisper = service.post(args.text, args.lat, args.lng)
    print(f"Saved whisper #{whisper.id}")
    return 0


def _cmd_nearby(service: WhisperService, args: argparse.Namespace) -> int:
    whispers = service.nearby(args.lat, args.lng, args.radius, args.precision)
    radius = args.radius if args.radius is not None else service.nearby_radius_m
    print(f"{len(whispers)} whispers within {radius:.0f} m of ({args.lat:.4f}, {args.lng:.4f})")
    for w in whispers:
        dist = haversine(args.lat, args.lng, w.lat, w.lng)
        print(f"  {colourize_distance(dist, radius)}  {format_whisper(w)}")
    return 0


def _cmd_purge(service: WhisperService, args: argparse.Namespace) -> int:
    removed = service.purge(args.days)
    print(f"Deleted {removed} whispers.")
    return 0


def _cmd_report(service: WhisperService, args: argparse.Namespace) -> int:
    radius = args.radius if args.radius is not None else service.cluster_radius_m
    frame = whispers_frame(service.recent(service.WORKING_SET), radius)
    summary = cluster_summary(frame)
    print(f"{len(frame)} whispers in {len(summary)} clusters (radius {radius:g} m)")
    if not summary.empty:
        print(summary.to_string(index=False))
    if args.csv:
        frame.to_csv(args.csv, index=False)
        print(f"Wrote {args.csv}")
    return 0


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(prog="whispers", description="Manage the whispers store.")
    parser.add_argument("--db", default=config.DATABASE_URL, help="database URL")
    parser.add_argument("--log-level", default=config.LOG_LEVEL)
    sub = parser.add_subparsers(dest="command", required=True)

    p = sub.add_parser("list", help="print recent whispers")
    p.add_argument("--limit", type=int, default=50)
    p.set_defaults(func=_cmd_list)

    p = sub.add_parser("post", help="leave a whisper")
    p.add_argument("text")
    p.add_argument("--lat", type=float, required=True)
    p.add_argument("--lng", type=float, required=True)
    p.set_defaults(func=_cmd_post)

    p = sub.add_parser("nearby", help="whispers around a point")
    p.add_argument("--lat", type=float, required=True)
    p.add_argument("--lng", type=float, required=True)
    p.add_argument("--radius", type=float, default=None, help="metres")
    p.add_argument("--precision", type=int, default=None, help="round coordinates to N decimals")
    p.set_defaults(func=_cmd_nearby)

    p = sub.add_parser("purge", help="delete expired whispers")
    p.add_argument("--days", type=float, default=None)
    p.set_defaults(func=_cmd_purge)

    p = sub.add_parser("report", help="cluster summary of recent whispers")
    p.add_argument("--radius", type=float, default=None, help="metres")
    p.add_argument("--csv", default=None, help="write every whisper with its cluster id")
    p.set_defaults(func=_cmd_report)
    return parser


def main(argv: Optional[List[str]] = None) -> int:
    args = build_parser().parse_args(argv)
    setup_logging(args.log_level)

    try:
        store = create_store(args.db, config.TURSO_AUTH_TOKEN or None)
    except (ValueError, StoreError) as exc:
        print(f"{Colours.RED}{exc}{Colours.RESET}", file=sys.stderr)
        return 1

    with store:
        service = WhisperService(
            store,
            retention_days=config.RETENTION_DAYS,
            nearby_radius_m=config.NEARBY_RADIUS_M,
            group_radius_m=config.GROUP_RADIUS_M,
            cluster_radius_m=config.CLUSTER_RADIUS_M,
            max_characters=config.MAX_CHARACTERS,
        )
        try:
            return args.func(service, args)
        except ValueError as exc:
            print(f"{Colours.RED}{exc}{Colours.RESET}", file=sys.stderr)
            return 2
        except StoreError as exc:
            print(f"{Colours.RED}Storage error: {exc}{Colours.RESET}", file=sys.stderr)
            return 1


if __name__ == "__main__":
    sys.exit(main())
