import logging

import numpy as np
import pytest

from plinet.exceptions import EmptyInputError, ShapeMismatchError, InsufficientTrialsError
from plinet.phase_lag import (
    accumulate_sign_sum,
    compute_pli,
    compute_unbiased_squared_pli,
    debias_squared_pli,
    phase_lag_index,
    unbiased_squared_phase_lag_index,
    validate_trials,
)


def _random_trials(n_trials=10, n_channels=4, n_samples=128, seed=0):
    rng = np.random.default_rng(seed)
    return [rng.standard_normal((n_channels, n_samples)) for _ in range(n_trials)]


def _lagged_trials(n_trials=12, n_samples=128, freq_bin=8, lag=np.pi / 4, seed=0):
    """Two channels oscillating at one bin; channel 0 leads channel 1 by ``lag``."""
    rng = np.random.default_rng(seed)
    t = np.arange(n_samples)
    trials = []
    for _ in range(n_trials):
        theta = rng.uniform(0, 2 * np.pi)
        lead = np.sin(2 * np.pi * freq_bin * t / n_samples + theta + lag)
        lag_ = np.sin(2 * np.pi * freq_bin * t / n_samples + theta)
        trial = np.vstack([lead, lag_]) + 0.01 * rng.standard_normal((2, n_samples))
        trials.append(trial)
    return trials


def test_pli_shape_and_bounds():
    pli = compute_pli(_random_trials())
    assert pli.shape == (4, 4, 65)
    assert np.all(pli >= 0.0)
    assert np.all(pli <= 1.0)


def test_pli_of_self_pairs_is_zero():
    pli = compute_pli(_random_trials())
    for i in range(4):
        assert np.all(pli[i, i] == 0.0)


def test_identical_channels_give_zero_pli():
    rng = np.random.default_rng(3)
    trials = [np.tile(rng.standard_normal(128), (2, 1)) for _ in range(8)]
    pli = compute_pli(trials)
    assert np.all(pli == 0.0)


def test_duplicated_trials_leave_pli_unchanged():
    trials = _random_trials(n_trials=6)
    np.testing.assert_array_equal(compute_pli(trials), compute_pli(trials + trials))


def test_consistent_phase_lag_gives_pli_of_one():
    pli = compute_pli(_lagged_trials(), window_type='hanning')
    assert pli[0, 1, 8] == 1.0
    assert pli[1, 0, 8] == 1.0


def test_nfft_is_raised_to_signal_length():
    trials = _random_trials(n_trials=3, n_samples=100)
    assert compute_pli(trials, n_fft=10).shape == (4, 4, 51)
    assert compute_pli(trials, n_fft=256).shape == (4, 4, 129)


def test_input_trials_are_not_modified():
    trials = [trial + 5.0 for trial in _random_trials(n_trials=3)]
    originals = [trial.copy() for trial in trials]
    compute_pli(trials)
    for trial, original in zip(trials, originals):
        np.testing.assert_array_equal(trial, original)


def test_three_dimensional_array_input():
    trials = _random_trials(n_trials=5)
    np.testing.assert_array_equal(compute_pli(np.stack(trials)), compute_pli(trials))


def test_parallel_matches_serial():
    trials = _random_trials(n_trials=6, n_channels=3)
    serial = accumulate_sign_sum(trials, n_jobs=1)
    parallel = accumulate_sign_sum(trials, n_jobs=2)
    np.testing.assert_array_equal(serial.values, parallel.values)
    assert serial.n_trials == parallel.n_trials == 6


def test_sign_sum_is_integer_valued():
    sign_sum = accumulate_sign_sum(_random_trials(n_trials=7), window_type='dpss', half_bandwidth=2.0)
    assert sign_sum.n_fft == 128
    assert sign_sum.n_channels == 4
    assert np.all(np.abs(sign_sum.values) <= 7)
    np.testing.assert_array_equal(sign_sum.values, np.round(sign_sum.values))


@pytest.mark.parametrize("x, n", [(0.5, 10), (0.0, 2), (1.0, 5), (0.25, 40)])
def test_debias_formula(x, n):
    assert debias_squared_pli(x, n) == (n * x ** 2 - 1) / (n - 1)


def test_debias_example_value():
    assert np.isclose(debias_squared_pli(0.5, 10), 0.1667, atol=1e-4)


def test_debias_requires_two_trials():
    with pytest.raises(InsufficientTrialsError, match="need >= 2"):
        debias_squared_pli(np.ones((2, 2)), 1)


def test_unbiased_squared_pli_matches_transform():
    trials = _random_trials(n_trials=9)
    expected = debias_squared_pli(compute_pli(trials), 9)
    np.testing.assert_array_equal(compute_unbiased_squared_pli(trials), expected)
    assert np.all(expected <= 1.0)


def test_unbiased_squared_pli_single_trial_fails_fast():
    with pytest.raises(InsufficientTrialsError):
        compute_unbiased_squared_pli(_random_trials(n_trials=1))
    with pytest.raises(InsufficientTrialsError):
        unbiased_squared_phase_lag_index(_random_trials(n_trials=1))


def test_empty_input():
    with pytest.raises(EmptyInputError):
        compute_pli([])

    network = phase_lag_index([])
    assert network.name == "Phase Lag Index"
    assert len(network.nodes) == 0 and len(network.edges) == 0

    network = unbiased_squared_phase_lag_index([])
    assert network.name == "Unbiased Squared Phase Lag Index"
    assert len(network.nodes) == 0 and len(network.edges) == 0


def test_empty_input_logs_warning(caplog):
    with caplog.at_level(logging.WARNING, logger='plinet'):
        phase_lag_index([])
        unbiased_squared_phase_lag_index([])

    warnings = [record for record in caplog.records
                if record.name == 'plinet' and record.levelno == logging.WARNING]
    assert len(warnings) == 2
    assert "empty" in warnings[0].getMessage()
    assert warnings[1].getMessage().startswith("Unbiased Squared Phase Lag Index")


def test_inconsistent_trials_are_rejected():
    rng = np.random.default_rng(0)
    with pytest.raises(ShapeMismatchError, match="Trial 1"):
        validate_trials([rng.standard_normal((4, 64)), rng.standard_normal((3, 64))])
    with pytest.raises(ShapeMismatchError):
        phase_lag_index([rng.standard_normal((4, 64)), rng.standard_normal((4, 32))])
    with pytest.raises(ShapeMismatchError):
        compute_pli([rng.standard_normal(64)])


def test_phase_lag_index_network():
    trials = _random_trials(n_trials=5, n_channels=3)
    vertices = np.array([[1.0, 2.0, 3.0], [4.0, 5.0, 6.0]])
    network = phase_lag_index(trials, vertices, sfreq=256.0)
    pli = compute_pli(trials)

    assert network.name == "Phase Lag Index"
    assert len(network.nodes) == 3
    assert len(network.edges) == 9
    np.testing.assert_array_equal(network.node_at(0).vert, [1.0, 2.0, 3.0])
    np.testing.assert_array_equal(network.node_at(1).vert, [4.0, 5.0, 6.0])
    np.testing.assert_array_equal(network.node_at(2).vert, [0.0, 0.0, 0.0])

    edges = network.edges
    for k, (i, j) in enumerate((i, j) for i in range(3) for j in range(3)):
        assert edges[k].start is network.node_at(i)
        assert edges[k].end is network.node_at(j)
        np.testing.assert_array_equal(edges[k].weight, pli[i, j])

    assert network.n_fft == 128
    assert network.frequency_bins()[-1] == 128.0


def test_phase_lag_index_without_self_loops():
    network = phase_lag_index(_random_trials(n_trials=3, n_channels=4), include_self_loops=False)
    assert len(network.edges) == 12
    assert not any(edge.is_self_loop for edge in network.edges)


def test_bad_vertices_are_rejected_before_computation():
    with pytest.raises(ShapeMismatchError):
        phase_lag_index(_random_trials(n_trials=2), vertices=np.zeros((4, 2)))


def test_unbiased_network_weights():
    trials = _random_trials(n_trials=6, n_channels=2)
    network = unbiased_squared_phase_lag_index(trials, include_self_loops=False)
    expected = compute_unbiased_squared_pli(trials)
    np.testing.assert_array_equal(network.edges[0].weight, expected[0, 1])
    np.testing.assert_array_equal(network.edges[1].weight, expected[1, 0])
