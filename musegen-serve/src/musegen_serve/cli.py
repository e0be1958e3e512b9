"""``musegen`` -- Generate music from a prompt, or start the generation server.

Usage::

    musegen "80s synthwave with a driving bassline" --secs 15 --output synth.wav
    musegen --model-dir models/musicgen-small --device cuda --port 8642
"""

from __future__ import annotations

import argparse
import logging
from pathlib import Path

from musegen_core.constants import (
    DEFAULT_DURATION_SECS,
    DEFAULT_PORT,
    MAX_DURATION_SECS,
    MIN_DURATION_SECS,
)

logger = logging.getLogger(__name__)


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="musegen",
        description="Generate music from text with MusicGen ONNX models.",
    )
    parser.add_argument(
        "prompt",
        nargs="?",
        default="",
        help="Prompt to render. Without one, the HTTP/WebSocket server starts.",
    )
    parser.add_argument(
        "--model-dir",
        type=Path,
        default=Path("models/musicgen-small"),
        help="Directory with config.json, tokenizer.json and the .onnx graphs.",
    )
    parser.add_argument(
        "--use-split-decoder",
        action="store_true",
        help="Use decoder_model + decoder_with_past_model instead of the merged decoder.",
    )
    parser.add_argument(
        "--device",
        choices=["auto", "cpu", "cuda", "coreml"],
        default="auto",
        help="ONNX Runtime execution provider (default: auto).",
    )
    parser.add_argument(
        "--secs",
        type=int,
        default=DEFAULT_DURATION_SECS,
        help=(
            f"Seconds of audio to generate, {MIN_DURATION_SECS}-{MAX_DURATION_SECS} "
            f"(default: {DEFAULT_DURATION_SECS})."
        ),
    )
    parser.add_argument(
        "--output",
        type=Path,
        default=Path("musegen-generated.wav"),
        help="Output WAV path for one-shot generation.",
    )
    parser.add_argument(
        "--host",
        default="127.0.0.1",
        help="Bind host (default: 127.0.0.1).",
    )
    parser.add_argument(
        "--port",
        type=int,
        default=DEFAULT_PORT,
        help=f"Bind port (default: {DEFAULT_PORT}).",
    )
    parser.add_argument(
        "--data-dir",
        type=Path,
        default=Path("musegen-data"),
        help="Where the server stores generated audio (default: musegen-data).",
    )
    parser.add_argument(
        "-v", "--verbose",
        action="store_true",
        help="Verbose logging.",
    )
    return parser


def generate_once(
    prompt: str,
    model_dir: Path,
    secs: int,
    output: Path,
    device: str = "auto",
    use_split_decoder: bool = False,
) -> Path:
    """Render one prompt to *output* and return its path."""
    from musegen_core.audio import write_wav
    from musegen_core.device import get_providers
    from musegen_core.pipeline import load_music_gen

    processor = load_music_gen(
        model_dir,
        providers=get_providers(device),
        use_split_decoder=use_split_decoder,
    )

    last_logged = -1

    def on_progress(progress: float) -> bool:
        nonlocal last_logged
        pct = int(progress * 100)
        if pct // 10 > last_logged // 10:
            logger.info("Generating... %d%%", pct)
        last_logged = pct
        return False

    samples = processor.process(prompt, secs, on_progress)
    path = write_wav(output, samples, processor.config.sampling_rate)
    logger.info("Wrote %s", path)
    return path


def main(argv: list[str] | None = None) -> None:
    parser = build_parser()
    args = parser.parse_args(argv)

    if not MIN_DURATION_SECS <= args.secs <= MAX_DURATION_SECS:
        parser.error(
            f"--secs must be between {MIN_DURATION_SECS} and {MAX_DURATION_SECS}"
        )

    logging.basicConfig(
        level=logging.DEBUG if args.verbose else logging.INFO,
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )

    if args.prompt:
        generate_once(
            args.prompt,
            args.model_dir,
            args.secs,
            args.output,
            device=args.device,
            use_split_decoder=args.use_split_decoder,
        )
        return

    from musegen_serve.app import init_app

    init_app(
        model_dir=args.model_dir,
        device=args.device,
        data_dir=args.data_dir,
        use_split_decoder=args.use_split_decoder,
    )

    import uvicorn

    uvicorn.run(
        "musegen_serve.app:app",
        host=args.host,
        port=args.port,
        log_level="debug" if args.verbose else "info",
    )


if __name__ == "__main__":
    main()
