import numpy as np
import matplotlib.pyplot as plt
from pathlib import Path

from hitmatch.io.assn_store import read_assns

def save_fraction_png(h5_path: str, out_png: str | None = None, bins: int = 50):
    """
    Histogram the energy fraction carried by the dominant particle of each hit.

    A peak at 1 means hits are mostly made by a single particle.
    """
    h5_path = str(h5_path)
    df = read_assns(h5_path)
    frac = df.loc[df["is_max_energy"], "energy_fraction"].to_numpy(dtype=np.float64)
    frac = frac[np.isfinite(frac)]

    if out_png is None:
        out_png = str(Path(h5_path).with_suffix(".png"))

    plt.figure()
    plt.hist(frac, bins=bins, range=(0.0, 1.0))
    plt.xlabel("dominant particle energy fraction")
    plt.ylabel("hits")
    plt.title(Path(h5_path).name + f" : {len(frac)} hits")
    plt.tight_layout()
    plt.savefig(out_png, dpi=150)
    plt.close()
    return out_png
