import os
import logging

import numpy as np
import mne

logger = logging.getLogger('plinet')


def trials_from_epochs(epochs, picks=None):
    """
    Convert MNE epochs into a list of trial matrices.

    :param epochs: mne.Epochs or mne.EpochsArray
    :param picks: channels to keep (anything accepted by ``Epochs.get_data``)
    :return: list of ndarrays of shape (n_channels, n_samples), one per epoch
    """
    data = epochs.get_data(picks=picks)
    return [np.array(epoch, dtype=float) for epoch in data]


def sensor_positions(info, picks=None):
    """
    Extract a (n_channels, 3) vertex matrix from the channel locations of an Info.

    Channels without a location (NaN entries) are placed at the origin.

    :param info: mne.Info
    :param picks: list of int or str, channel indices or names (default: all channels)
    :return: ndarray of shape (n_channels, 3)
    """
    if picks is None:
        picks = range(len(info['chs']))
    elif isinstance(picks, (str, int, np.integer)):
        picks = [picks]

    indices = []
    for pick in picks:
        if isinstance(pick, str):
            if pick not in info['ch_names']:
                raise ValueError(f"Channel '{pick}' not found in info")
            pick = info['ch_names'].index(pick)
        indices.append(int(pick))

    positions = np.array([info['chs'][k]['loc'][:3] for k in indices], dtype=float).reshape(-1, 3)
    return np.nan_to_num(positions, nan=0.0)


class EpochLoader:
    def __init__(self, folder_path, name):
        """
        Initializes the EpochLoader with a folder path where the EDF file is stored.

        :param folder_path: str, the base directory where the EDF file is stored
        :param name: str, the name of the subject or experiment (the EDF file should match this name)
        """
        self.folder_path = folder_path
        self.name = name
        self.edf_file_path = f"{folder_path}/{name}/{name}.edf"
        self.sfreq = None
        self.ch_names = None
        self.info = None
        # Check for the existence of the EDF file
        if not os.path.exists(self.edf_file_path):
            raise FileNotFoundError(f"EDF file not found: {self.edf_file_path}")

    def load_trials(self, epoch_duration, picks=None, overlap=0.0):
        """
        Reads the EDF file and cuts it into fixed-length trials.

        :param epoch_duration: float, length of each trial in seconds
        :param picks: list of str or int, channels to load (None = all channels)
        :param overlap: float, overlap between consecutive trials in seconds
        :return: list of ndarrays of shape (n_channels, n_samples)
        """
        if epoch_duration <= 0:
            raise ValueError("epoch_duration must be positive")
        if overlap < 0 or overlap >= epoch_duration:
            raise ValueError("overlap must be in [0, epoch_duration)")

        raw = mne.io.read_raw_edf(self.edf_file_path, preload=True, verbose=False)
        if picks is not None:
            raw.pick(picks)

        epochs = mne.make_fixed_length_epochs(raw, duration=epoch_duration, overlap=overlap,
                                              preload=True, verbose=False)
        self.sfreq = raw.info['sfreq']
        self.ch_names = list(raw.ch_names)
        self.info = raw.info

        trials = trials_from_epochs(epochs)
        logger.info(f"Loaded {len(trials)} trials of {epoch_duration}s from {len(self.ch_names)} channels "
                    f"({self.edf_file_path})")
        return trials

    def sensor_positions(self):
        """
        Channel positions of the last loaded recording, shape (n_channels, 3).
        """
        if self.info is None:
            raise ValueError("No recording loaded. Call load_trials() first.")
        return sensor_positions(self.info)
