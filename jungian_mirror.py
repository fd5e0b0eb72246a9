#!/usr/bin/env python3
"""
Jungian Mirror — Live Archetype Mirror
CLI entry point. Also importable as a library (see core.session).

Usage:
    python jungian_mirror.py list-effects
    python jungian_mirror.py apply photo.jpg --effect anima --output anima.png
    python jungian_mirror.py live --camera 0 --output-dir ~/Pictures/JungianMirror

Live window keys:
    1-5     select archetype
    Space   spin (random archetype)
    S       snapshot (PNG, un-mirrored)
    R       record a clip
    Q/Esc   quit
"""

import argparse
import asyncio
import logging
import os
import sys
from pathlib import Path

import numpy as np

# Add project root to path so imports work
sys.path.insert(0, os.path.dirname(os.path.abspath(__file__)))

from core.capture import CaptureError, encode_png
from core.config import MirrorConfig
from core.render import compose_frame
from core.safety import SafetyError
from core.source import SourceNotReady
from core.surface import RenderSurface
from core.video_io import load_image
from effects import EFFECT_IDS, UnknownEffect, get_effect, list_effects

__version__ = "0.1.0"

WINDOW_TITLE = "Jungian Mirror"


def cmd_list_effects(args):
    effects = list_effects()
    print(f"\n  {len(effects)} archetypes:\n")
    for i, e in enumerate(effects, start=1):
        print(f"  [{i}] {e['id']:<10} {e['name']}")
        if not args.compact:
            print(f"      {e['description']}")
            if e["params"]:
                params = ", ".join(f"{k}={v}" for k, v in e["params"].items())
                print(f"      params: {params}")
    print()


def cmd_apply(args):
    """Run the frame pipeline on a still image."""
    try:
        get_effect(args.effect)
    except UnknownEffect as e:
        print(f"Error: {e}", file=sys.stderr)
        sys.exit(1)

    input_path = Path(args.input)
    if not input_path.is_file():
        print(f"Error: Input not found: {input_path}", file=sys.stderr)
        sys.exit(1)

    frame = load_image(input_path)
    h, w = frame.shape[:2]
    surface = RenderSurface(w, h)
    rng = np.random.RandomState(args.seed) if args.seed is not None else None
    compose_frame(surface, frame, args.effect, mirrored=args.mirror, rng=rng)

    output = Path(args.output or f"{input_path.stem}_{args.effect}.png")
    output.parent.mkdir(parents=True, exist_ok=True)
    output.write_bytes(encode_png(surface.pixels))
    print(f"  Saved: {output} ({w}x{h}, {args.effect})")


def _print_signal(template):
    return lambda *args: print(template.format(*args))


async def _run_live(args):
    import cv2

    from core.session import MirrorSession
    from core.source import CaptureDeviceSource

    config = MirrorConfig.load(args.config) if args.config else MirrorConfig()
    if args.output_dir:
        config = config.model_copy(update={"output_dir": Path(args.output_dir)})

    source = CaptureDeviceSource(args.camera)
    keymap = {ord(str(i)): effect_id for i, effect_id in enumerate(EFFECT_IDS, start=1)}

    async with MirrorSession(source, config) as session:
        events = session.events
        events.on("effect_changed", _print_signal("  {1}: {2}"))
        events.on("spin_started", _print_signal("  Spinning..."))
        events.on("recording_started", _print_signal("  [REC] Recording started"))
        events.on("recording_ended", _print_signal("  [REC] Recording ended"))
        events.on("recording_failed", _print_signal("  [REC] Failed: {0}"))

        session.start()
        print(f"\n  {WINDOW_TITLE} — saving to {config.output_dir}")
        print("  [1-5] archetype  [Space] spin  [S] snapshot  [R] record  [Q] quit\n")

        while True:
            frame = session.render_loop.latest_frame
            if frame is not None:
                cv2.imshow(WINDOW_TITLE, cv2.cvtColor(frame.pixels, cv2.COLOR_RGBA2BGR))
            key = cv2.waitKey(1) & 0xFF

            if key in (ord("q"), 27):
                break
            elif key in keymap:
                session.select(keymap[key])
            elif key == ord(" "):
                session.trigger_spin()
            elif key == ord("s"):
                try:
                    print(f"  Snapshot: {session.snapshot()}")
                except (SourceNotReady, SafetyError) as e:
                    print(f"  Snapshot failed: {e}")
            elif key == ord("r"):
                try:
                    await session.start_recording()
                except (CaptureError, SourceNotReady) as e:
                    print(f"  Recording unavailable: {e}")

            await asyncio.sleep(config.render_interval)

    cv2.destroyAllWindows()


def cmd_live(args):
    try:
        asyncio.run(_run_live(args))
    except RuntimeError as e:
        print(f"Error: {e}", file=sys.stderr)
        sys.exit(1)
    except KeyboardInterrupt:
        print("\n  Interrupted.")


def main():
    parser = argparse.ArgumentParser(
        prog="jungian-mirror",
        description="Jungian Mirror — live archetype video effects",
    )
    parser.add_argument("--version", action="version", version=f"%(prog)s {__version__}")
    parser.add_argument("-v", "--verbose", action="store_true", help="Debug logging")
    sub = parser.add_subparsers(dest="command")

    # list-effects
    p = sub.add_parser("list-effects", help="List archetype effects in display order")
    p.add_argument("--compact", action="store_true", help="Compact view (names only)")

    # apply
    p = sub.add_parser("apply", help="Apply an archetype to a still image")
    p.add_argument("input", help="Input image")
    p.add_argument("--effect", required=True, choices=list(EFFECT_IDS), help="Effect id")
    p.add_argument("--output", help="Output PNG (default: <input>_<effect>.png)")
    p.add_argument("--mirror", action="store_true", help="Mirror like the live view")
    p.add_argument("--seed", type=int, help="Seed for random glitches")

    # live
    p = sub.add_parser("live", help="Open the camera mirror window")
    p.add_argument("--camera", type=int, default=0, help="Camera index")
    p.add_argument("--config", help="JSON config file")
    p.add_argument("--output-dir", help="Where snapshots and clips are saved")

    args = parser.parse_args()

    logging.basicConfig(
        level=logging.DEBUG if args.verbose else logging.WARNING,
        format="  %(levelname)s %(name)s: %(message)s",
    )

    commands = {
        "list-effects": cmd_list_effects,
        "apply": cmd_apply,
        "live": cmd_live,
    }
    if args.command not in commands:
        parser.print_help()
        sys.exit(1)
    commands[args.command](args)


if __name__ == "__main__":
    main()
