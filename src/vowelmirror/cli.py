from __future__ import annotations

import json
from pathlib import Path
from typing import Optional

import typer
from pydantic import ValidationError
from rich.console import Console
from rich.table import Table

from vowelmirror.analysis.errors import CalibrationError, UnknownVowel
from vowelmirror.analysis.vowel_model import (
    BASIS_VOWELS,
    VOWEL_ALIASES,
    VOWEL_ORDER,
    coefficients_for,
    compute_vowel_basis,
    describe_vowels,
    resolve_vowel,
    synthesize_vowel_target,
)
from vowelmirror.api.video_overlay import run_video_overlay
from vowelmirror.calibration import CalibrationSet, load_calibration
from vowelmirror.config import DEFAULT_ARTIFACT_ROOT, OverlayConfig
from vowelmirror.landmarks.mediapipe_face_landmarker import DEFAULT_MODEL_PATH

app = typer.Typer(
    add_completion=False,
    no_args_is_help=True,
    help="VowelMirror: vowel mouth-shape targets that follow head pose.",
)
vowels_app = typer.Typer(help="Vowel enumeration utilities.")
calibration_app = typer.Typer(help="Calibration inspection utilities.")
overlay_app = typer.Typer(help="Pose-following overlay utilities.")
app.add_typer(vowels_app, name="vowels")
app.add_typer(calibration_app, name="calibration")
app.add_typer(overlay_app, name="overlay")
console = Console()

_ALIAS_BY_SYMBOL = {symbol: alias for alias, symbol in VOWEL_ALIASES.items()}


def _fmt(value: float) -> str:
    return f"{value:.3f}"


def _load_calibration_or_exit(path: Path) -> CalibrationSet:
    try:
        return load_calibration(path)
    except FileNotFoundError as exc:
        raise typer.BadParameter(str(exc), param_hint="--calibration") from exc
    except CalibrationError as exc:
        console.print(f"[bold red]{exc}[/bold red]")
        raise typer.Exit(code=1) from exc


def _resolve_vowel_or_exit(vowel: str) -> str:
    try:
        return resolve_vowel(vowel)
    except UnknownVowel as exc:
        raise typer.BadParameter(str(exc), param_hint="--vowel") from exc


@vowels_app.command("list")
def vowels_list() -> None:
    table = Table(title="Korean monophthongs")
    table.add_column("Vowel")
    table.add_column("Alias")
    table.add_column("Mode")
    table.add_column("open", justify="right")
    table.add_column("round", justify="right")
    table.add_column("spread", justify="right")
    for symbol in VOWEL_ORDER:
        coeffs = coefficients_for(symbol)
        mode = f"basis ({BASIS_VOWELS[symbol]})" if symbol in BASIS_VOWELS else "derived"
        table.add_row(
            symbol,
            _ALIAS_BY_SYMBOL[symbol],
            mode,
            _fmt(coeffs.open),
            _fmt(coeffs.round),
            _fmt(coeffs.spread),
        )
    console.print(table)


@calibration_app.command("check")
def calibration_check(
    calibration: Path = typer.Option(
        ...,
        "--calibration",
        "-c",
        help="Vowel calibration JSON (neutral, a, u, i).",
    ),
) -> None:
    calibration_set = _load_calibration_or_exit(calibration)
    basis = compute_vowel_basis(calibration_set)
    console.print(f"[bold green]Calibration OK[/bold green]: {calibration}")

    features_table = Table(title="Calibrated features")
    for column in ("Frame", "A", "W", "P"):
        features_table.add_column(column, justify="right" if column != "Frame" else "left")
    for name, features in basis.features.items():
        features_table.add_row(name, _fmt(features.A), _fmt(features.W), _fmt(features.P))
    console.print(features_table)

    basis_table = Table(title="Basis deltas (vs. neutral)")
    for column in ("Basis", "dA", "dW", "dP", "rate"):
        basis_table.add_column(column, justify="right" if column != "Basis" else "left")
    for name, delta in (("open", basis.open), ("round", basis.round), ("spread", basis.spread)):
        basis_table.add_row(name, *(_fmt(float(v)) for v in delta), _fmt(basis.rates()[name]))
    console.print(basis_table)

    vowels_table = Table(title="Predicted features per vowel (diagnostic)")
    for column in ("Vowel", "Mode", "open", "round", "spread", "A", "W", "P"):
        vowels_table.add_column(column, justify="left" if column in {"Vowel", "Mode"} else "right")
    for row in describe_vowels(basis):
        vowels_table.add_row(
            str(row["vowel"]),
            str(row["mode"]),
            *(_fmt(float(row[key])) for key in ("open", "round", "spread", "A", "W", "P")),
        )
    console.print(vowels_table)


@calibration_app.command("target")
def calibration_target(
    calibration: Path = typer.Option(
        ...,
        "--calibration",
        "-c",
        help="Vowel calibration JSON (neutral, a, u, i).",
    ),
    vowel: str = typer.Option(
        ...,
        "--vowel",
        help="Vowel symbol (e.g. ㅔ) or romanized alias (e.g. e).",
    ),
    out: Optional[Path] = typer.Option(
        None,
        "--out",
        help="Write the target shape as JSON instead of printing it.",
    ),
) -> None:
    symbol = _resolve_vowel_or_exit(vowel)
    calibration_set = _load_calibration_or_exit(calibration)
    target = synthesize_vowel_target(symbol, calibration_set)
    payload = {
        "vowel": symbol,
        "mode": "basis" if symbol in BASIS_VOWELS else "derived",
        "landmarks": {str(idx): [float(v) for v in point] for idx, point in target.items()},
    }
    if out is None:
        console.print_json(data=payload)
        return
    out.parent.mkdir(parents=True, exist_ok=True)
    out.write_text(json.dumps(payload, indent=2, ensure_ascii=False), encoding="utf-8")
    console.print(f"- 생성 파일: {out}")


@overlay_app.command("run")
def overlay_run(
    video: Path = typer.Option(
        ...,
        "--video",
        "-v",
        help="Input video path.",
    ),
    calibration: Path = typer.Option(
        ...,
        "--calibration",
        "-c",
        help="Vowel calibration JSON (neutral, a, u, i).",
    ),
    vowel: str = typer.Option(
        ...,
        "--vowel",
        help="Vowel symbol (e.g. ㅔ) or romanized alias (e.g. e).",
    ),
    model: Path = typer.Option(
        DEFAULT_MODEL_PATH,
        "--model",
        help="MediaPipe Face Landmarker .task model path.",
    ),
    alpha: float = typer.Option(
        0.5,
        "--alpha",
        help="Blendshape smoothing factor in [0, 1).",
    ),
    stride: int = typer.Option(
        1,
        "--stride",
        min=1,
        help="Frame stride.",
    ),
    artifact_root: Path = typer.Option(
        DEFAULT_ARTIFACT_ROOT,
        "--artifact-root",
        help="Root directory for artifact outputs.",
    ),
) -> None:
    try:
        config = OverlayConfig(
            calibration_path=calibration,
            vowel=vowel,
            smoothing_alpha=alpha,
            artifact_root=artifact_root,
        )
    except ValidationError as exc:
        error = exc.errors()[0]
        field = str(error.get("loc", ("",))[0])
        hint = {"calibration_path": "--calibration", "vowel": "--vowel", "smoothing_alpha": "--alpha"}.get(
            field, "--artifact-root"
        )
        raise typer.BadParameter(error.get("msg", "Invalid input"), param_hint=hint) from exc

    try:
        result = run_video_overlay(video_path=video, config=config, model_path=model, stride=stride)
    except (FileNotFoundError, ValueError, RuntimeError) as exc:
        console.print(f"[bold red]{exc}[/bold red]")
        raise typer.Exit(code=1) from exc

    console.print("[bold green]Overlay run complete[/bold green]")
    console.print(f"- 생성 파일: {result['overlay_npz_path']}")
    console.print(f"- 생성 파일: {result['overlay_json_path']}")
    console.print_json(data=result["quality_stats"])
