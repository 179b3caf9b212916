from __future__ import annotations

from pathlib import Path
from typing import Iterable, Optional
import typer

from hitmatch.config.load import load_config
from hitmatch.config.schemas import Config
from hitmatch.io.adapters import make_adapter
from hitmatch.io.assn_store import write_init, write_assns
from hitmatch.physics.events import SimEvent
from hitmatch.physics.matching import HitParticleMatcher
from hitmatch.vis.hdf import save_fraction_png


def _iter_source_events(cfg: Config) -> Iterable[SimEvent]:
    """
    Unified event source.

    - cfg.io.adapter.type selects the HDF5 vs table adapter.
    - cfg.io.input_path is passed to the adapter.
    """
    adapter = make_adapter(
        cfg.io.adapter,
        hit_label=cfg.matching.hit_label,
        particle_label=cfg.matching.particle_label,
    )
    return adapter.iter_events(str(cfg.io.input_path))


def run_pipeline(
    cfg_path: str,
    *,
    max_events: Optional[int] = None,
    diagnostics_level: Optional[int] = None,
) -> Path:
    """
    Match hits to truth particles for every event of the configured input.

    CLI flags (--max-events/--diagnostics) override the corresponding [run]
    fields when not None.

    Parameters
    ----------
    cfg_path : str
        Path to TOML configuration file.

    Returns
    -------
    Path to written HDF5 file.
    """
    cfg = load_config(cfg_path)

    # ---- apply CLI overrides on top of TOML ----
    if max_events is not None:
        cfg.run.max_events = max_events
    if diagnostics_level is not None:
        cfg.run.diagnostics_level = diagnostics_level

    diag_level = cfg.run.diagnostics_level

    if diag_level >= 1:
        print(f"[run] config = {cfg_path}")
        print(f"[run] hits={cfg.matching.hit_label} particles={cfg.matching.particle_label}")
        print(f"[run] input={cfg.io.input_path} -> output={cfg.io.output_path}")

    out_path = Path(cfg.io.output_path)
    out_path.parent.mkdir(parents=True, exist_ok=True)

    matcher = HitParticleMatcher(
        hit_label=cfg.matching.hit_label,
        particle_label=cfg.matching.particle_label,
    )

    f = write_init(str(out_path), cfg_path, cfg)
    try:
        for j, ev in enumerate(_iter_source_events(cfg)):
            if cfg.run.max_events is not None and j >= cfg.run.max_events:
                if diag_level >= 1:
                    print(f"[pipeline] Reached max_events={cfg.run.max_events}, stopping.")
                break
            assns = matcher.produce(ev)
            write_assns(f, ev.event_id, assns)
            if diag_level >= 2:
                print(f"[pipeline] event {ev.event_id}: {len(assns)} assns")
    finally:
        f.close()

    if diag_level >= 1:
        print(f"[pipeline] {matcher.diagnostics.summary()}")

    # Optional PNG export
    if cfg.vis.export_png_on_write:
        try:
            out_png = save_fraction_png(str(out_path), bins=cfg.vis.bins)
            if diag_level >= 1:
                print(f"[pipeline] Wrote PNG {out_png}")
        except (KeyError, ValueError, OSError) as e:
            if diag_level >= 1:
                print(f"[pipeline] PNG export failed: {e!r}")

    return out_path


# ---------------------------------------------------------------------------
# Unified CLI entry point
# ---------------------------------------------------------------------------

app = typer.Typer(help="Hit <-> truth particle matching (hitmatch.pipelines.core)")


@app.command()
def main(
    cfg_path: str = typer.Argument(
        ...,
        help="Path to TOML config file",
    ),
    max_events: Optional[int] = typer.Option(
        None,
        "--max-events",
        "-n",
        help="Override [run].max_events (stop after this many events)",
    ),
    diagnostics: Optional[int] = typer.Option(
        None,
        "--diagnostics",
        "-d",
        min=0,
        max=2,
        help="Override [run].diagnostics_level (0=off, 1=minimal, 2=verbose)",
    ),
):
    """
    Run hit/particle matching for a single config.
    """
    out_path = run_pipeline(cfg_path, max_events=max_events, diagnostics_level=diagnostics)
    typer.echo(str(out_path))


if __name__ == "__main__":
    app()
