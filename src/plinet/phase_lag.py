"""
PhaseLag - Phase Lag Index Connectivity Metrics
===============================================

This module computes the Phase Lag Index (PLI) and the unbiased squared
PLI (Vinck et al., NeuroImage 55, pp. 1548-65, 2011) between all pairs of
channels of a multi-trial recording.

Pipeline:
- Tapers are generated once for the signal length and shared by all trials
- Each trial is demeaned per channel (on a copy) and transformed to
  tapered spectra
- For every ordered channel pair the cross-spectral density is computed
  and the sign of its imaginary part is accumulated over trials
- PLI is the absolute accumulated sign divided by the trial count; the
  unbiased squared PLI is a pure transform of that value

Trials may be processed in a worker pool. Per-trial partial sums are
merged in trial order, so parallel and serial runs give identical results.
"""

import os
import logging
from dataclasses import dataclass
from multiprocessing import Pool
from typing import Sequence, List

import numpy as np
from tqdm import tqdm

from .exceptions import EmptyInputError, ShapeMismatchError, InsufficientTrialsError
from .network import Network, build_network, node_positions
from .spectral import generate_tapers, compute_tapered_spectra, csd_from_tapered_spectra, \
    resolve_nfft, n_freq_bins

logger = logging.getLogger('plinet')

PLI_NAME = "Phase Lag Index"
USPLI_NAME = "Unbiased Squared Phase Lag Index"


@dataclass
class SignSum:
    """
    Sign of the imaginary cross-spectrum summed over trials.

    Attributes
    ----------
    values : np.ndarray
        Array of shape (n_channels, n_channels, n_freqs). ``values[i, j, f]``
        is the sum over trials of sign(imag(CSD(i, j, f))).
    n_trials : int
        Number of trials that were accumulated.
    n_fft : int
        Effective FFT length used for the spectra.
    """

    values: np.ndarray
    n_trials: int
    n_fft: int

    @property
    def n_channels(self) -> int:
        return self.values.shape[0]


def validate_trials(trials) -> List[np.ndarray]:
    """
    Check that all trials are 2D and share channel and sample counts.

    :param trials: sequence of (n_channels, n_samples) arrays, or a 3D array
    :return: list of float arrays (the caller's arrays are not modified)
    :raises ShapeMismatchError: if a trial is not 2D or shapes differ
    """
    checked = []
    expected_shape = None
    for k, trial in enumerate(trials):
        trial = np.asarray(trial, dtype=float)
        if trial.ndim != 2:
            raise ShapeMismatchError(f"Trial {k} must be a 2D array (n_channels, n_samples), got shape {trial.shape}")
        if trial.shape[0] == 0 or trial.shape[1] == 0:
            raise ShapeMismatchError(f"Trial {k} has no channels or no samples, got shape {trial.shape}")
        if expected_shape is None:
            expected_shape = trial.shape
        elif trial.shape != expected_shape:
            raise ShapeMismatchError(f"Trial {k} has shape {trial.shape}, expected {expected_shape} "
                                     f"like the first trial")
        checked.append(trial)
    return checked


def _trial_sign_sum(args) -> np.ndarray:
    """
    Sign of the imaginary CSD for every ordered channel pair of one trial.

    Top-level so it can be shipped to worker processes.
    """
    trial, tapers, weights, n_fft = args

    # Demean a working copy
    data = trial - trial.mean(axis=1, keepdims=True)

    spectra = compute_tapered_spectra(data, tapers, n_fft)
    n_channels = data.shape[0]
    signs = np.empty((n_channels, n_channels, n_freq_bins(n_fft)))
    for i in range(n_channels):
        csd = csd_from_tapered_spectra(spectra[i], spectra, weights, weights, n_fft, 1.0)
        signs[i] = np.sign(csd.imag)
    return signs


def resolve_n_jobs(n_jobs: int) -> int:
    if n_jobs == -1:
        return os.cpu_count() or 1
    if n_jobs is None or n_jobs < 1:
        raise ValueError(f"n_jobs must be a positive integer or -1, got {n_jobs}")
    return int(n_jobs)


def accumulate_sign_sum(trials: Sequence[np.ndarray], n_fft: int = None, window_type: str = 'hanning',
                        n_jobs: int = 1, verbose: bool = False, **taper_kwargs) -> SignSum:
    """
    Accumulate sign(imag(CSD)) over trials for every ordered channel pair.

    Parameters
    ----------
    trials : sequence of np.ndarray
        Trial matrices of shape (n_channels, n_samples).
    n_fft : int, optional
        FFT length. Defaults to, and is never less than, the signal length.
    window_type : str, default='hanning'
        Taper type, see :func:`plinet.spectral.generate_tapers`.
    n_jobs : int, default=1
        Number of worker processes; -1 uses all CPUs.
    verbose : bool, default=False
        Show a progress bar over trials.
    **taper_kwargs
        Forwarded to :func:`plinet.spectral.generate_tapers`
        (``half_bandwidth``, ``n_tapers``).

    Returns
    -------
    SignSum
        Accumulated signs, trial count and effective FFT length.

    Raises
    ------
    EmptyInputError
        If no trials are given.
    ShapeMismatchError
        If the trials have inconsistent shapes.
    """
    trials = validate_trials(trials)
    if not trials:
        raise EmptyInputError("No trials given")
    n_jobs = resolve_n_jobs(n_jobs)

    n_channels, n_samples = trials[0].shape
    n_fft = resolve_nfft(n_fft, n_samples)
    tapers, weights = generate_tapers(n_samples, window_type, **taper_kwargs)

    logger.info(f"→ Accumulating phase signs over {len(trials)} trials, {n_channels} channels, "
                f"n_fft={n_fft}, {tapers.shape[0]} taper(s), n_jobs={n_jobs}")

    tasks = ((trial, tapers, weights, n_fft) for trial in trials)
    total = np.zeros((n_channels, n_channels, n_freq_bins(n_fft)))

    if n_jobs == 1:
        partials = map(_trial_sign_sum, tasks)
        for partial in tqdm(partials, total=len(trials), desc="Processing trials",
                            unit="trial", disable=not verbose):
            total += partial
    else:
        with Pool(processes=n_jobs) as pool:
            # imap keeps trial order, so the reduction order is fixed
            partials = pool.imap(_trial_sign_sum, tasks)
            for partial in tqdm(partials, total=len(trials), desc="Processing trials",
                                unit="trial", disable=not verbose):
                total += partial

    return SignSum(values=total, n_trials=len(trials), n_fft=n_fft)


def pli_from_sign_sum(sign_sum: SignSum) -> np.ndarray:
    """PLI = |accumulated sign| / number of trials."""
    return np.abs(sign_sum.values) / sign_sum.n_trials


def debias_squared_pli(pli, n_trials: int):
    """
    Unbiased estimator of the squared PLI.

    :param pli: float or ndarray, PLI values
    :param n_trials: int, number of trials the PLI was computed from
    :return: (n_trials * pli**2 - 1) / (n_trials - 1)
    :raises InsufficientTrialsError: if n_trials < 2
    """
    if n_trials < 2:
        raise InsufficientTrialsError(n_trials)
    return (float(n_trials) * np.square(pli) - 1.0) / float(n_trials - 1)


def compute_pli(trials: Sequence[np.ndarray], n_fft: int = None, window_type: str = 'hanning',
                n_jobs: int = 1, verbose: bool = False, **taper_kwargs) -> np.ndarray:
    """
    Phase Lag Index between all ordered channel pairs.

    Returns an array of shape (n_channels, n_channels, n_freqs) with values
    in [0, 1]; ``pli[i]`` is the channel x frequency matrix of seed channel i.
    """
    sign_sum = accumulate_sign_sum(trials, n_fft, window_type, n_jobs, verbose, **taper_kwargs)
    return pli_from_sign_sum(sign_sum)


def compute_unbiased_squared_pli(trials: Sequence[np.ndarray], n_fft: int = None,
                                 window_type: str = 'hanning', n_jobs: int = 1,
                                 verbose: bool = False, **taper_kwargs) -> np.ndarray:
    """
    Unbiased squared Phase Lag Index between all ordered channel pairs.

    The trial count is checked before any spectral work is done.
    """
    trials = validate_trials(trials)
    if not trials:
        raise EmptyInputError("No trials given")
    if len(trials) < 2:
        raise InsufficientTrialsError(len(trials))
    sign_sum = accumulate_sign_sum(trials, n_fft, window_type, n_jobs, verbose, **taper_kwargs)
    return debias_squared_pli(pli_from_sign_sum(sign_sum), sign_sum.n_trials)


def _metric_network(name, transform, min_trials, trials, vertices, n_fft, window_type, include_self_loops,
                    n_jobs, sfreq, verbose, taper_kwargs) -> Network:
    """Validate, accumulate, transform and build the network for one metric."""
    trials = validate_trials(trials)
    if not trials:
        logger.warning(f"{name}: input data is empty, returning an empty network")
        return Network(name, sfreq=sfreq)

    # Fail before any spectral work on bad vertices
    positions = node_positions(trials[0].shape[0], vertices)
    if len(trials) < min_trials:
        raise InsufficientTrialsError(len(trials), min_trials)

    sign_sum = accumulate_sign_sum(trials, n_fft, window_type, n_jobs, verbose, **taper_kwargs)
    values = pli_from_sign_sum(sign_sum)
    if transform is not None:
        values = transform(values, sign_sum.n_trials)

    network = build_network(name, values, positions, include_self_loops, n_fft=sign_sum.n_fft, sfreq=sfreq)
    logger.info(f"✔ {name}: {len(network.nodes)} nodes, {len(network.edges)} edges")
    return network


def phase_lag_index(trials: Sequence[np.ndarray], vertices=None, n_fft: int = None,
                    window_type: str = 'hanning', include_self_loops: bool = True,
                    n_jobs: int = 1, sfreq: float = None, verbose: bool = False,
                    **taper_kwargs) -> Network:
    """
    Compute the Phase Lag Index network of a multi-trial recording.

    Parameters
    ----------
    trials : sequence of np.ndarray
        Trial matrices of shape (n_channels, n_samples). An empty sequence
        yields an empty network named ``'Phase Lag Index'``.
    vertices : array-like, optional
        Channel positions of shape (n, 3). Channels beyond ``n`` are placed
        at the origin.
    n_fft : int, optional
        FFT length, raised to the signal length if shorter.
    window_type : str, default='hanning'
        Taper type.
    include_self_loops : bool, default=True
        Add the i -> i edges (their weights are zero for real signals).
    n_jobs : int, default=1
        Worker processes for the per-trial computation.
    sfreq : float, optional
        Sampling frequency, stored on the network for bin-to-Hz mapping.
    verbose : bool, default=False
        Show a progress bar over trials.

    Returns
    -------
    Network
        One node per channel, one edge per ordered channel pair carrying
        the PLI per frequency bin.
    """
    return _metric_network(PLI_NAME, None, 1, trials, vertices, n_fft, window_type,
                           include_self_loops, n_jobs, sfreq, verbose, taper_kwargs)


def unbiased_squared_phase_lag_index(trials: Sequence[np.ndarray], vertices=None, n_fft: int = None,
                                     window_type: str = 'hanning', include_self_loops: bool = True,
                                     n_jobs: int = 1, sfreq: float = None, verbose: bool = False,
                                     **taper_kwargs) -> Network:
    """
    Compute the unbiased squared Phase Lag Index network.

    Takes the same arguments as :func:`phase_lag_index`. Needs at least two
    trials; an empty sequence yields an empty network.

    Raises
    ------
    InsufficientTrialsError
        If exactly one trial is given.
    """
    return _metric_network(USPLI_NAME, debias_squared_pli, 2, trials, vertices, n_fft, window_type,
                           include_self_loops, n_jobs, sfreq, verbose, taper_kwargs)
