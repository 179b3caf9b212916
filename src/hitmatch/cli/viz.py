from __future__ import annotations

import typer
from typing import Optional

from hitmatch.io.assn_store import read_assns
from hitmatch.vis.hdf import save_fraction_png

app = typer.Typer(help="hitmatch output inspection tools")

@app.command("h5-to-png")
def h5_to_png(
    h5_path: str = typer.Argument(..., help="Path to HDF5 file containing /assns"),
    bins: int = typer.Option(50, "--bins", "-b", help="Histogram bins on [0, 1]"),
    out: Optional[str] = typer.Option(None, "--out", "-o", help="Output PNG path (defaults to file.png)"),
):
    """Render the dominant-particle energy fraction histogram to a PNG."""
    out_png = save_fraction_png(h5_path, out_png=out, bins=bins)
    typer.echo(f"Wrote {out_png}")

@app.command("summary")
def summary(
    h5_path: str = typer.Argument(..., help="Path to HDF5 file containing /assns"),
):
    """Print per-event association counts and mean dominant energy fraction."""
    df = read_assns(h5_path)
    if df.empty:
        typer.echo("no associations")
        return
    dom = df[df["is_max_energy"]]
    per_event = df.groupby("event_id").size()
    typer.echo(f"assns={len(df)} events_with_assns={len(per_event)} hits_with_max={len(dom)}")
    typer.echo(f"mean dominant energy fraction = {dom['energy_fraction'].mean():.4f}")

if __name__ == "__main__":
    app()
