__version__ = "0.1.0"

import logging

from .exceptions import ConnectivityError, EmptyInputError, ShapeMismatchError, InsufficientTrialsError
from .spectral import generate_tapers, compute_tapered_spectra, csd_from_tapered_spectra
from .network import Network, NetworkNode, NetworkEdge, build_network
from .phase_lag import compute_pli, compute_unbiased_squared_pli, debias_squared_pli, \
    phase_lag_index, unbiased_squared_phase_lag_index
from .epoch_loader import EpochLoader, trials_from_epochs, sensor_positions
from .connectivity_analyzer import ConnectivityAnalyzer

def set_log_level(level='INFO'):
    """
    Set logging level for the plinet package.
    
    Parameters:
    -----------
    level : str or int
        Logging level. Can be:
        - 'ERROR' or logging.ERROR (40): Error messages
        - 'WARNING' or logging.WARNING (30): Warnings, e.g. empty input data
        - 'INFO' or logging.INFO (20): Milestones of each computation (default)
        - 'DEBUG' or logging.DEBUG (10): Taper, cache and network construction details
        
    Examples:
    ---------
    >>> import plinet
    >>> plinet.set_log_level('WARNING')  # Only warnings and errors
    >>> plinet.set_log_level('DEBUG')    # Everything
    """
    if isinstance(level, str):
        level = getattr(logging, level.upper())
    
    logger = logging.getLogger('plinet')
    logger.setLevel(level)
    
    # Add handler if none exists
    if not logger.handlers:
        handler = logging.StreamHandler()
        formatter = logging.Formatter('%(message)s')
        handler.setFormatter(formatter)
        logger.addHandler(handler)
        
        # Prevent propagation to root logger to avoid duplicate messages
        logger.propagate = False

__all__ = ["ConnectivityAnalyzer",
           "EpochLoader",
           "Network",
           "NetworkNode",
           "NetworkEdge",
           "build_network",
           "generate_tapers",
           "compute_tapered_spectra",
           "csd_from_tapered_spectra",
           "compute_pli",
           "compute_unbiased_squared_pli",
           "debias_squared_pli",
           "phase_lag_index",
           "unbiased_squared_phase_lag_index",
           "trials_from_epochs",
           "sensor_positions",
           "ConnectivityError",
           "EmptyInputError",
           "ShapeMismatchError",
           "InsufficientTrialsError",
           "set_log_level"]
