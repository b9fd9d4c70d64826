# observe.py: commit what the chosen camera actually sees into the view histories

from __future__ import annotations
from typing import Dict, Optional
import numpy as np

from plan_utils import CameraPose, _normalize, project_in_frame, unoccluded
from reconstructability import ScoringParams, history_gain
from runners import ParallelRunner, SequentialRunner, chunk_bounds
from view_history import ViewHistory


def visible_in_camera(scene, samples: np.ndarray, pose: CameraPose, intr: Dict[str, float],
                      runner: Optional[ParallelRunner] = None, chunk: int = 4096) -> np.ndarray:
    """Ids of samples inside the image frame with a clear line of sight to the camera."""
    runner = runner or SequentialRunner()
    n = len(samples)
    visible = np.zeros(n, dtype=bool)
    bounds = chunk_bounds(n, chunk)

    def work(c):
        a, b = bounds[c]
        P = samples[a:b]
        framed = project_in_frame(pose, intr, P)
        vis = np.zeros(b - a, dtype=bool)
        if framed.any():
            vis[framed] = unoccluded(scene, pose.position, P[framed])
        visible[a:b] = vis

    runner.run(len(bounds), work)
    return np.flatnonzero(visible)

def commit_observations(scene, samples: np.ndarray, history: ViewHistory, pose: CameraPose,
                        intr: Dict[str, float], params: Optional[ScoringParams] = None,
                        runner: Optional[ParallelRunner] = None, chunk: int = 4096) -> np.ndarray:
    params = params or ScoringParams()
    ids = visible_in_camera(scene, samples, pose, intr, runner=runner, chunk=chunk)
    if ids.size == 0:
        return ids
    v = _normalize(samples[ids] - pose.position[None, :])
    gains = history_gain(history, ids, v, params)
    history.append(ids, v, gains)
    return ids
