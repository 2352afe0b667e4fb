#!/usr/bin/env python3
"""Render the Cornell box scene.

This script demonstrates end-to-end rendering of the classic Cornell box scene
and its smoke variant with voltrace. It creates the scene, builds the BVH,
renders the image on a pool of worker threads and saves it as a PNG.

Usage:
    python examples/render_cornell_box.py [options]

Options:
    --width WIDTH       Image width in pixels (default: 256)
    --height HEIGHT     Image height in pixels (default: 256)
    --samples SAMPLES   Number of samples per pixel (default: 16)
    --max-depth DEPTH   Maximum path length (default: 50)
    --threads THREADS   Worker threads, 0 for one per CPU (default: 0)
    --seed SEED         Sampler seed (default: 0)
    --tile-size SIZE    Tile edge length in pixels (default: 32)
    --scene SCENE       "box" or "smoke" (default: box)
    --noise             Use Perlin-noise density in the smoke scene
    --output OUTPUT     Output file path (default: cornell_box.png)
    --log-level LEVEL   Logging level (default: INFO)
    --quiet             Suppress progress output

Example:
    python examples/render_cornell_box.py --scene smoke --noise --samples 64
"""

from __future__ import annotations

import argparse
import logging
import sys
import time
from pathlib import Path

from voltrace.config import RenderConfig
from voltrace.core.scheduler import TileScheduler
from voltrace.logging_config import setup_logging
from voltrace.preview.export import save_png
from voltrace.scene.cornell_box import create_cornell_box_scene, create_cornell_smoke_scene

logger = logging.getLogger("voltrace.examples.render_cornell_box")


def parse_args(argv: list[str] | None = None) -> argparse.Namespace:
    """Parse command-line arguments."""
    parser = argparse.ArgumentParser(
        description="Render the Cornell box scene.",
        formatter_class=argparse.RawDescriptionHelpFormatter,
    )
    parser.add_argument("--width", type=int, default=256, help="Image width in pixels (default: 256)")
    parser.add_argument("--height", type=int, default=256, help="Image height in pixels (default: 256)")
    parser.add_argument("--samples", type=int, default=16, help="Samples per pixel (default: 16)")
    parser.add_argument("--max-depth", type=int, default=50, help="Maximum path length (default: 50)")
    parser.add_argument(
        "--threads",
        type=int,
        default=0,
        help="Worker threads, 0 for one per CPU (default: 0)",
    )
    parser.add_argument("--seed", type=int, default=0, help="Sampler seed (default: 0)")
    parser.add_argument("--tile-size", type=int, default=32, help="Tile edge length (default: 32)")
    parser.add_argument(
        "--scene",
        choices=("box", "smoke"),
        default="box",
        help="Scene variant (default: box)",
    )
    parser.add_argument(
        "--noise",
        action="store_true",
        help="Use Perlin-noise density in the smoke scene",
    )
    parser.add_argument(
        "--output",
        type=str,
        default="cornell_box.png",
        help="Output file path (default: cornell_box.png)",
    )
    parser.add_argument(
        "--log-level",
        default="INFO",
        choices=("DEBUG", "INFO", "WARNING", "ERROR"),
        help="Logging level (default: INFO)",
    )
    parser.add_argument(
        "--quiet",
        action="store_true",
        help="Suppress progress output",
    )
    return parser.parse_args(argv)


def render_cornell_box(config: RenderConfig, scene_name: str, noise: bool, output_path: str, quiet: bool) -> Path:
    """Render a Cornell box scene and save it to a PNG file.

    Args:
        config: Render parameters.
        scene_name: "box" or "smoke".
        noise: Use Perlin-noise density in the smoke scene.
        output_path: Output file path (PNG).
        quiet: If True, suppress progress output.

    Returns:
        Path to the saved image file.
    """
    if scene_name == "smoke":
        manager, camera, _ = create_cornell_smoke_scene(noise=noise)
    else:
        manager, camera, _ = create_cornell_box_scene()
    scene = manager.build()

    start_time = time.time()

    def progress_callback(done: int, total: int) -> None:
        if not quiet:
            elapsed = time.time() - start_time
            print(
                f"\r  Progress: {done}/{total} tiles ({100.0 * done / total:.1f}%) - {elapsed:.1f}s",
                end="",
                flush=True,
            )

    framebuffer = TileScheduler(config).render(scene, camera, callback=progress_callback)
    if not quiet:
        print()  # Newline after progress

    output_file = Path(output_path)
    save_png(framebuffer, output_file, tone_map="reinhard", gamma=2.2)

    for failure in framebuffer.failed_tiles:
        logger.warning("Tile %d is missing from the image: %s", failure.tile.index, failure.error)
    logger.info("Saved to %s in %.2fs", output_file.absolute(), time.time() - start_time)
    return output_file


def main(argv: list[str] | None = None) -> int:
    """Main entry point."""
    args = parse_args(argv)
    setup_logging(args.log_level)

    try:
        config = RenderConfig(
            width=args.width,
            height=args.height,
            samples_per_pixel=args.samples,
            max_depth=args.max_depth,
            thread_count=args.threads,
            seed=args.seed,
            tile_size=args.tile_size,
        )
    except ValueError as e:
        logger.error("Invalid configuration: %s", e)
        return 2

    render_cornell_box(config, args.scene, args.noise, args.output, args.quiet)
    return 0


if __name__ == "__main__":
    sys.exit(main())
