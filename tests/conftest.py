"""
Shared fixtures for streamflowml tests
"""

import matplotlib
matplotlib.use("Agg")

import numpy as np
import pandas as pd
import pytest


def make_linear_data(n_rows=200, n_predictors=5, noise=0.3, seed=42):
    """Outcome linear in the predictors plus gaussian noise"""
    rng = np.random.default_rng(seed)
    X = rng.normal(size=(n_rows, n_predictors))
    coefs = np.array([2.0, -1.5, 1.0, 0.5, 3.0, 1.2, -0.7, 0.9][:n_predictors])
    y = 1.0 + X @ coefs + rng.normal(0, noise, n_rows)
    df = pd.DataFrame(X, columns=[f"x{i + 1}" for i in range(n_predictors)])
    df['q_mean'] = y
    df.index = pd.Index([f"{i:08d}" for i in range(n_rows)], name='gauge_id')
    return df


def make_gauge_frames(n_gauges=80, seed=7):
    """Two CAMELS-like attribute tables sharing gauge_id"""
    rng = np.random.default_rng(seed)
    ids = [f"0{1000000 + i}" for i in range(n_gauges)]
    p_mean = rng.uniform(1, 6, n_gauges)
    aridity = rng.uniform(0.3, 3, n_gauges)
    elev_mean = rng.uniform(50, 3000, n_gauges)

    clim = pd.DataFrame({
        'gauge_id': ids,
        'p_mean': p_mean,
        'aridity': aridity,
        'high_prec_timing': rng.choice(['djf', 'jja', 'son'], n_gauges),
    })
    topo = pd.DataFrame({
        'gauge_id': ids,
        'gauge_lat': rng.uniform(30, 48, n_gauges),
        'gauge_lon': rng.uniform(-120, -70, n_gauges),
        'elev_mean': elev_mean,
        'q_mean': 0.8 * p_mean - 0.5 * aridity + 0.0002 * elev_mean + rng.normal(0, 0.1, n_gauges),
    })
    return clim, topo


@pytest.fixture
def linear_data():
    return make_linear_data()


@pytest.fixture
def gauge_dir(tmp_path):
    """Directory with two semicolon separated attribute files"""
    clim, topo = make_gauge_frames()
    data_dir = tmp_path / "camels"
    data_dir.mkdir()
    clim.to_csv(data_dir / "camels_clim.txt", sep=";", index=False)
    topo.to_csv(data_dir / "camels_topo.txt", sep=";", index=False)
    return data_dir
