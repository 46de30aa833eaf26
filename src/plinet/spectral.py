"""
Spectral - Tapered Spectral Estimation Primitives
=================================================

This module provides the frequency-domain building blocks used by the
connectivity metrics: taper generation, tapered FFT spectra and
cross-spectral densities combined over tapers.

Features:
- Single-window tapers (Hann, rectangular) normalised to unit energy
- DPSS (Slepian) multitaper sets with eigenvalue-derived weights
- Zero-padded real FFT of tapered signals for one or many channels
- Weighted cross-spectral density across tapers (multitaper estimate)
"""

import logging
from typing import Tuple

import numpy as np
from scipy.fft import rfft
from scipy.signal.windows import hann
from mne.time_frequency import dpss_windows

from .exceptions import ShapeMismatchError

logger = logging.getLogger('plinet')

WINDOW_TYPES = ('hanning', 'ones', 'boxcar', 'none', 'dpss', 'multitaper')


def n_freq_bins(n_fft: int) -> int:
    """Number of one-sided frequency bins for an FFT of length ``n_fft``."""
    return int(n_fft // 2) + 1


def resolve_nfft(n_fft, n_samples: int) -> int:
    """
    Effective FFT length for a signal of ``n_samples`` samples.

    ``None`` means the signal length. Values shorter than the signal are
    raised to the signal length, never rejected.
    """
    if n_fft is None or n_fft < n_samples:
        return int(n_samples)
    return int(n_fft)


def generate_tapers(n_samples: int, window_type: str = 'hanning',
                    half_bandwidth: float = 4.0, n_tapers: int = None) -> Tuple[np.ndarray, np.ndarray]:
    """
    Generate a set of tapers and their combination weights.

    Parameters
    ----------
    n_samples : int
        Length of the signal the tapers are applied to.
    window_type : str, default='hanning'
        ``'hanning'`` for a single symmetric Hann window, ``'ones'``
        (aliases ``'boxcar'``, ``'none'``) for a single rectangular window,
        ``'dpss'`` (alias ``'multitaper'``) for a DPSS multitaper set.
    half_bandwidth : float, default=4.0
        Half bandwidth (in frequency bins) of the DPSS tapers. Only used
        for the multitaper window types.
    n_tapers : int, optional
        Number of DPSS tapers. Defaults to ``floor(2 * half_bandwidth - 1)``.

    Returns
    -------
    tapers : np.ndarray
        Array of shape (n_tapers, n_samples). Single windows are scaled
        to unit L2 norm.
    weights : np.ndarray
        Array of shape (n_tapers,) with one weight per taper.

    Raises
    ------
    ValueError
        If n_samples is not positive or the window type is unknown.
    """
    if n_samples <= 0:
        raise ValueError(f"n_samples must be positive, got {n_samples}")

    window_type = window_type.lower()
    if window_type == 'hanning':
        window = hann(n_samples, sym=True)
        norm = np.linalg.norm(window)
        # hann(2) is all zeros; leave it unscaled rather than divide by zero
        if norm > 0:
            window = window / norm
        tapers = window[np.newaxis, :]
        weights = np.ones(1)
    elif window_type in ('ones', 'boxcar', 'none'):
        tapers = np.full((1, n_samples), 1.0 / np.sqrt(n_samples))
        weights = np.ones(1)
    elif window_type in ('dpss', 'multitaper'):
        if half_bandwidth <= 0:
            raise ValueError(f"half_bandwidth must be positive, got {half_bandwidth}")
        if n_tapers is None:
            n_tapers = max(int(np.floor(2 * half_bandwidth - 1)), 1)
        tapers, eigvals = dpss_windows(n_samples, half_bandwidth, n_tapers, sym=False)
        tapers = np.atleast_2d(tapers)
        weights = np.sqrt(np.atleast_1d(eigvals))
    else:
        raise ValueError(f"Unknown window type '{window_type}'. "
                         f"Supported types: {', '.join(WINDOW_TYPES)}")

    logger.debug(f"Generated {tapers.shape[0]} '{window_type}' taper(s) of length {n_samples}")
    return tapers, weights


def compute_tapered_spectra(data: np.ndarray, tapers: np.ndarray, n_fft: int) -> np.ndarray:
    """
    Compute the FFT of a signal multiplied by each taper.

    :param data: ndarray, one channel (n_samples,) or many channels (n_channels, n_samples)
    :param tapers: ndarray, tapers of shape (n_tapers, n_samples)
    :param n_fft: int, FFT length; raised to n_samples if shorter
    :return: complex ndarray of shape (n_tapers, n_freqs) for a single channel,
             or (n_channels, n_tapers, n_freqs) for a channel matrix
    """
    data = np.asarray(data, dtype=float)
    n_samples = data.shape[-1]
    if tapers.shape[-1] != n_samples:
        raise ShapeMismatchError(f"Taper length {tapers.shape[-1]} does not match signal length {n_samples}")
    n_fft = resolve_nfft(n_fft, n_samples)

    # (..., 1, n_samples) * (n_tapers, n_samples) -> (..., n_tapers, n_samples)
    tapered = data[..., np.newaxis, :] * tapers
    return rfft(tapered, n=n_fft, axis=-1)


def csd_from_tapered_spectra(spec_x: np.ndarray, spec_y: np.ndarray,
                             weights_x: np.ndarray, weights_y: np.ndarray,
                             n_fft: int, scale: float = 1.0) -> np.ndarray:
    """
    Combine tapered spectra of two signals into a cross-spectral density.

    The spectra of each taper are weighted, multiplied and summed, which
    gives the multitaper estimate when several tapers are used. The
    one-sided spectrum is doubled except at DC and, for even ``n_fft``,
    at the Nyquist bin.

    Parameters
    ----------
    spec_x : np.ndarray
        Tapered spectrum of the seed signal, shape (n_tapers, n_freqs).
    spec_y : np.ndarray
        Tapered spectrum of the target signal, shape (n_tapers, n_freqs),
        or a stack of targets with shape (n_channels, n_tapers, n_freqs).
    weights_x, weights_y : np.ndarray
        Taper weights, shape (n_tapers,).
    n_fft : int
        FFT length the spectra were computed with.
    scale : float, default=1.0
        Divisor applied to the result, e.g. the sampling frequency.

    Returns
    -------
    np.ndarray
        Complex CSD of shape (n_freqs,), or (n_channels, n_freqs) for a
        stack of targets.
    """
    if spec_x.shape != spec_y.shape[-2:]:
        raise ShapeMismatchError(f"Tapered spectra shapes differ: {spec_x.shape} vs {spec_y.shape[-2:]}")
    if len(weights_x) != spec_x.shape[0] or len(weights_y) != spec_y.shape[-2]:
        raise ShapeMismatchError(f"Expected {spec_x.shape[0]} taper weights, "
                                 f"got {len(weights_x)} and {len(weights_y)}")

    denom = np.sum(np.abs(weights_x) ** 2) / 2.0 + np.sum(np.abs(weights_y) ** 2) / 2.0
    weights_x = np.asarray(weights_x, dtype=float)[:, np.newaxis]
    weights_y = np.asarray(weights_y, dtype=float)[:, np.newaxis]
    x_re, x_im = weights_x * spec_x.real, weights_x * spec_x.imag
    y_re, y_im = weights_y * spec_y.real, weights_y * spec_y.imag

    # Built from real products only, so X * conj(X) is exactly real
    cross_real = np.sum(x_re * y_re + x_im * y_im, axis=-2)
    cross_imag = np.sum(x_im * y_re - x_re * y_im, axis=-2)
    csd = 2.0 * (cross_real + 1j * cross_imag) / denom
    csd[..., 0] /= 2.0
    if n_fft % 2 == 0:
        csd[..., -1] /= 2.0
    return csd / scale
