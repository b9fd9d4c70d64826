# debug_dumps.py: optional per-waypoint snapshots (histogram heat maps + pose log)
# Plugged into plan_trajectory(observer=...); the planner never depends on it.

import csv
import os
import numpy as np
import matplotlib
matplotlib.use("Agg")
import matplotlib.pyplot as plt

from plan_utils import ROT_COLS


class HistogramDumper:
    def __init__(self, out_dir: str, every: int = 1):
        self.out_dir = out_dir
        self.every = max(1, int(every))
        os.makedirs(out_dir, exist_ok=True)
        self.poses_csv = os.path.join(out_dir, "poses_snapshot.csv")
        with open(self.poses_csv, "w", newline="") as f:
            csv.writer(f).writerow(["idx", "x", "y", "z"] + ROT_COLS + ["n_committed", "best_score"])

    def __call__(self, index, pose, hist, visible_ids):
        with open(self.poses_csv, "a", newline="") as f:
            csv.writer(f).writerow([index, *map(float, pose.position),
                                    *map(float, pose.rotation.reshape(-1)),
                                    len(visible_ids), float(hist.max()) if hist.size else 0.0])
        if index % self.every != 0:
            return
        save_histogram_png(hist, os.path.join(self.out_dir, f"hist_{index:04d}.png"),
                           title=f"waypoint {index}")

def save_histogram_png(hist: np.ndarray, path: str, title: str = "") -> None:
    """theta x phi heat map, best bin marked."""
    n_t, n_p = hist.shape
    fig, ax = plt.subplots(figsize=(8, 4))
    im = ax.imshow(hist.T, origin="lower", aspect="auto", cmap="viridis",
                   extent=[0.0, 360.0, 90.0, 180.0])
    if hist.size and hist.max() > 0:
        i, j = np.unravel_index(int(np.argmax(hist)), hist.shape)
        th = 360.0 * i / n_t
        ph = 90.0 + 90.0 * j / max(1, n_p - 1)
        ax.plot([th], [ph], "r+", ms=12, mew=2)
    ax.set_xlabel("azimuth theta (deg)")
    ax.set_ylabel("elevation phi (deg)")
    if title:
        ax.set_title(title)
    fig.colorbar(im, ax=ax, label="reconstructability")
    fig.tight_layout()
    fig.savefig(path, dpi=120)
    plt.close(fig)
