"""
ConnectivityAnalyzer - Phase-Based EEG/MEG Connectivity Networks
================================================================

This module provides a high-level interface for computing phase-lag based
connectivity networks from multi-trial electrophysiological recordings.

Features:
- Phase Lag Index and unbiased squared Phase Lag Index networks
- One shared spectral pass when several metrics are requested
- Hann, rectangular and DPSS multitaper spectral estimation
- Optional parallel processing of trials over a worker pool
- Direct construction from MNE epochs with sensor positions as node coordinates
"""

import time
import logging
from typing import Dict, Iterable, Optional

from .exceptions import InsufficientTrialsError
from .network import Network, build_network, node_positions
from .phase_lag import SignSum, PLI_NAME, USPLI_NAME, validate_trials, accumulate_sign_sum, \
    pli_from_sign_sum, debias_squared_pli, resolve_n_jobs
from .spectral import WINDOW_TYPES
from .epoch_loader import trials_from_epochs, sensor_positions

logger = logging.getLogger('plinet')

METRICS = {
    'pli': PLI_NAME,
    'uspli': USPLI_NAME,
}


class ConnectivityAnalyzer:
    """
    Phase-lag connectivity analysis for a fixed set of trials.

    The analyzer validates its inputs once, computes the trial-summed sign
    of the imaginary cross-spectrum on first use and derives every
    requested metric from that single accumulation.

    Analysis Methods:
        Phase Lag Index (PLI):
            - Consistency of the sign of the phase difference across trials
            - Insensitive to zero-lag (volume conduction) coupling
            - Values in [0, 1]

        Unbiased Squared PLI:
            - Bias-corrected squared PLI (Vinck et al., 2011)
            - Expected value zero for unrelated signals, can be negative
            - Requires at least two trials
    """

    def __init__(
        self,
        *,
        trials,
        vertices=None,
        n_fft: int = None,
        window_type: str = 'hanning',
        include_self_loops: bool = True,
        n_jobs: int = 1,
        sfreq: float = None,
        taper_kwargs: Optional[dict] = None,
        verbose: bool = False
    ):
        """
        Initialize the ConnectivityAnalyzer with trial data and analysis parameters.

        Parameters
        ----------
        trials : sequence of np.ndarray
            Trial matrices of shape (n_channels, n_samples), all of the same shape.
            May be empty, in which case every metric returns an empty network.
        vertices : array-like, optional
            Node positions of shape (n, 3). May be shorter than the channel count.
        n_fft : int, optional
            FFT length. Defaults to the signal length; shorter values are raised to it.
        window_type : str, default='hanning'
            One of ``'hanning'``, ``'ones'``, ``'boxcar'``, ``'none'``, ``'dpss'``, ``'multitaper'``.
        include_self_loops : bool, default=True
            Whether networks contain the i -> i edges.
        n_jobs : int, default=1
            Number of worker processes for trial processing; -1 uses all CPUs.
        sfreq : float, optional
            Sampling frequency in Hz, stored on the resulting networks.
        taper_kwargs : dict, optional
            Extra taper options (``half_bandwidth``, ``n_tapers``) for DPSS tapers.
        verbose : bool, default=False
            Show a progress bar over trials.

        Raises
        ------
        ValueError
            If a parameter is invalid.
        ShapeMismatchError
            If trials or vertices have inconsistent shapes.
        """
        if window_type.lower() not in WINDOW_TYPES:
            raise ValueError(f"Unknown window type '{window_type}'. Supported types: {', '.join(WINDOW_TYPES)}")
        if n_fft is not None and n_fft <= 0:
            raise ValueError(f"n_fft must be positive, got {n_fft}")
        if sfreq is not None and sfreq <= 0:
            raise ValueError("sfreq must be positive")

        self.trials = validate_trials(trials)
        self.n_fft = n_fft
        self.window_type = window_type
        self.include_self_loops = include_self_loops
        self.n_jobs = resolve_n_jobs(n_jobs)
        self.sfreq = sfreq
        self.taper_kwargs = dict(taper_kwargs or {})
        self.verbose = verbose

        n_channels = self.trials[0].shape[0] if self.trials else 0
        self.vertices = node_positions(n_channels, vertices)

        self._sign_sum = None

    @classmethod
    def from_epochs(cls, epochs, picks=None, **kwargs) -> 'ConnectivityAnalyzer':
        """
        Build an analyzer from MNE epochs.

        Sensor locations become node positions and the epochs' sampling
        frequency is stored on the networks, unless given explicitly.

        :param epochs: mne.Epochs or mne.EpochsArray
        :param picks: list of int or str, channel indices or names to use (default: all)
        :param kwargs: further ConnectivityAnalyzer arguments
        """
        if isinstance(picks, (str, int)):
            picks = [picks]
        elif picks is not None:
            picks = list(picks)
        kwargs.setdefault('vertices', sensor_positions(epochs.info, picks))
        kwargs.setdefault('sfreq', epochs.info['sfreq'])
        return cls(trials=trials_from_epochs(epochs, picks=picks), **kwargs)

    # ========================================================================
    # PUBLIC METHODS - Metrics
    # ========================================================================

    @property
    def n_trials(self) -> int:
        return len(self.trials)

    def phase_lag_index(self) -> Network:
        """
        Phase Lag Index network.

        Returns
        -------
        Network
            Named ``'Phase Lag Index'``; empty if no trials were given.
        """
        return self.compute(['pli'])['pli']

    def unbiased_squared_phase_lag_index(self) -> Network:
        """
        Unbiased squared Phase Lag Index network.

        Raises
        ------
        InsufficientTrialsError
            If exactly one trial was given.
        """
        return self.compute(['uspli'])['uspli']

    def compute(self, metrics: Iterable[str] = ('pli', 'uspli')) -> Dict[str, Network]:
        """
        Compute several metrics from one shared spectral pass.

        Parameters
        ----------
        metrics : iterable of str, default=('pli', 'uspli')
            Metric keys, any of ``'pli'`` and ``'uspli'``.

        Returns
        -------
        dict
            Metric key -> Network, in the requested order.
        """
        metrics = [metric.lower() for metric in metrics]
        unknown = [metric for metric in metrics if metric not in METRICS]
        if unknown:
            raise ValueError(f"Unknown metric(s) {unknown}. Supported metrics: {list(METRICS)}")

        if not self.trials:
            logger.warning("Input data is empty, returning empty networks")
            return {metric: Network(METRICS[metric], sfreq=self.sfreq) for metric in metrics}
        if 'uspli' in metrics and self.n_trials < 2:
            raise InsufficientTrialsError(self.n_trials)

        analysis_start_time = time.time()
        sign_sum = self._accumulate()
        pli = pli_from_sign_sum(sign_sum)

        networks = {}
        for metric in metrics:
            values = pli if metric == 'pli' else debias_squared_pli(pli, sign_sum.n_trials)
            networks[metric] = build_network(METRICS[metric], values, self.vertices, self.include_self_loops,
                                             n_fft=sign_sum.n_fft, sfreq=self.sfreq)

        logger.info(f"✔ Computed {', '.join(METRICS[m] for m in metrics)} in "
                    f"{time.time() - analysis_start_time:.2f}s")
        return networks

    # ========================================================================
    # PRIVATE METHODS
    # ========================================================================

    def _accumulate(self) -> SignSum:
        """Run the spectral pass once and cache its result."""
        if self._sign_sum is None:
            self._sign_sum = accumulate_sign_sum(self.trials, self.n_fft, self.window_type,
                                                 self.n_jobs, self.verbose, **self.taper_kwargs)
        else:
            logger.debug("Reusing accumulated phase signs")
        return self._sign_sum
