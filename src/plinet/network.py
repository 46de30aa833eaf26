"""
Network - Node/Edge Graph Container for Connectivity Results
============================================================

A connectivity metric produces one frequency-resolved weight vector per
ordered channel pair. This module stores those results as a graph: one
node per channel (with an optional 3D sensor/source position) and one
edge per channel pair carrying the weight vector.

Edges keep direct references to the node objects they connect; a node
keeps a list of the edges that start at it. Neither list owns the other.
"""

import logging
from typing import List, Optional, Tuple

import numpy as np
from scipy.fft import rfftfreq

from .exceptions import ShapeMismatchError

logger = logging.getLogger('plinet')


class NetworkNode:
    """
    One channel of a connectivity network.

    :param node_id: int, channel index
    :param vert: array-like of length 3, spatial position (defaults to the origin)
    """

    def __init__(self, node_id: int, vert=None):
        self.id = int(node_id)
        if vert is None:
            vert = np.zeros(3)
        self.vert = np.array(vert, dtype=float).reshape(3)
        self._edges = []

    def append(self, edge: 'NetworkEdge'):
        """Register an edge that starts at this node."""
        self._edges.append(edge)

    @property
    def edges(self) -> List['NetworkEdge']:
        return list(self._edges)

    @property
    def degree(self) -> int:
        return len(self._edges)

    def strength(self, bin_range: Optional[Tuple[int, int]] = None) -> float:
        """Sum of the averaged weights of all edges starting at this node."""
        return float(sum(edge.averaged_weight(bin_range) for edge in self._edges))

    def __repr__(self):
        return f"NetworkNode(id={self.id}, vert={self.vert.tolist()}, degree={self.degree})"


class NetworkEdge:
    """
    A weighted, frequency-resolved connection between two nodes.

    :param start: NetworkNode, seed node
    :param end: NetworkNode, target node
    :param weight: array-like, one weight per frequency bin
    """

    def __init__(self, start: NetworkNode, end: NetworkNode, weight):
        self.start = start
        self.end = end
        self.weight = np.array(weight, dtype=float).ravel()

    @property
    def is_self_loop(self) -> bool:
        return self.start is self.end

    def averaged_weight(self, bin_range: Optional[Tuple[int, int]] = None) -> float:
        """
        Mean edge weight over a range of frequency bins.

        :param bin_range: tuple (low, high) of bin indices, both inclusive;
                          None averages over all bins
        :return: float, averaged weight
        """
        if self.weight.size == 0:
            return 0.0
        if bin_range is None:
            return float(np.mean(self.weight))
        low, high = bin_range
        if low < 0 or high >= self.weight.size or low > high:
            raise ValueError(f"Invalid bin range {bin_range} for {self.weight.size} frequency bins")
        return float(np.mean(self.weight[low:high + 1]))

    def __repr__(self):
        return f"NetworkEdge({self.start.id} -> {self.end.id}, n_bins={self.weight.size})"


class Network:
    """
    Connectivity graph produced by one metric invocation.

    Parameters
    ----------
    name : str
        Name of the connectivity metric (e.g. ``'Phase Lag Index'``).
    n_fft : int, optional
        FFT length behind the edge weights, used to map bins to Hz.
    sfreq : float, optional
        Sampling frequency of the analysed signals in Hz.
    """

    def __init__(self, name: str = "", n_fft: int = None, sfreq: float = None):
        self.name = name
        self.n_fft = n_fft
        self.sfreq = sfreq
        self._nodes = []
        self._edges = []

    # ========================================================================
    # Construction
    # ========================================================================

    def append_node(self, node: NetworkNode):
        self._nodes.append(node)

    def append_edge(self, edge: NetworkEdge):
        """Add an edge and register it with its start node."""
        edge.start.append(edge)
        self._edges.append(edge)

    # ========================================================================
    # Access
    # ========================================================================

    @property
    def nodes(self) -> List[NetworkNode]:
        return list(self._nodes)

    @property
    def edges(self) -> List[NetworkEdge]:
        return list(self._edges)

    def node_at(self, index: int) -> NetworkNode:
        return self._nodes[index]

    def is_empty(self) -> bool:
        return not self._nodes

    def __len__(self):
        return len(self._nodes)

    def __repr__(self):
        return f"Network(name={self.name!r}, nodes={len(self._nodes)}, edges={len(self._edges)})"

    # ========================================================================
    # Derived quantities
    # ========================================================================

    def connectivity_matrix(self, bin_range: Optional[Tuple[int, int]] = None) -> np.ndarray:
        """
        Dense node x node matrix of edge weights averaged over frequency bins.

        Pairs without an edge are zero. Row index is the start node,
        column index the end node.
        """
        n_nodes = len(self._nodes)
        index = {id(node): k for k, node in enumerate(self._nodes)}
        matrix = np.zeros((n_nodes, n_nodes))
        for edge in self._edges:
            matrix[index[id(edge.start)], index[id(edge.end)]] = edge.averaged_weight(bin_range)
        return matrix

    def min_max_weights(self, bin_range: Optional[Tuple[int, int]] = None) -> Tuple[float, float]:
        """Smallest and largest averaged edge weight, (0.0, 0.0) for an edgeless network."""
        if not self._edges:
            return 0.0, 0.0
        weights = [edge.averaged_weight(bin_range) for edge in self._edges]
        return float(min(weights)), float(max(weights))

    def frequency_bins(self) -> np.ndarray:
        """Frequency in Hz of each edge-weight bin."""
        if self.n_fft is None or self.sfreq is None:
            raise ValueError("Network needs both n_fft and sfreq to map bins to frequencies")
        return rfftfreq(self.n_fft, d=1.0 / self.sfreq)


def node_positions(n_channels: int, vertices) -> np.ndarray:
    """
    Index-aligned node positions; channels without a vertex row sit at the origin.
    """
    positions = np.zeros((n_channels, 3))
    if vertices is None:
        return positions
    vertices = np.asarray(vertices, dtype=float)
    if vertices.size == 0:
        return positions
    if vertices.ndim != 2 or vertices.shape[1] != 3:
        raise ShapeMismatchError(f"vertices must have shape (n, 3), got {vertices.shape}")
    n_rows = min(n_channels, vertices.shape[0])
    positions[:n_rows] = vertices[:n_rows]
    return positions


def build_network(name: str, values: np.ndarray, vertices=None, include_self_loops: bool = True,
                  n_fft: int = None, sfreq: float = None) -> Network:
    """
    Materialise a channel x channel x frequency result into a Network.

    Parameters
    ----------
    name : str
        Network name.
    values : np.ndarray
        Array of shape (n_channels, n_channels, n_freqs); ``values[i, j]``
        becomes the weight of the edge from node i to node j.
    vertices : array-like, optional
        Node positions of shape (n, 3). May be shorter than the channel
        count or empty.
    include_self_loops : bool, default=True
        Whether to add the i -> i edges.
    n_fft, sfreq : optional
        Stored on the network for bin-to-Hz conversion.

    Returns
    -------
    Network
        Nodes in channel order, edges in row-major (i, j) order.
    """
    if values.ndim != 3 or values.shape[0] != values.shape[1]:
        raise ShapeMismatchError(f"values must have shape (n_channels, n_channels, n_freqs), got {values.shape}")

    n_channels = values.shape[0]
    network = Network(name, n_fft=n_fft, sfreq=sfreq)
    for i, position in enumerate(node_positions(n_channels, vertices)):
        network.append_node(NetworkNode(i, position))

    nodes = network.nodes
    for i in range(n_channels):
        for j in range(n_channels):
            if i == j and not include_self_loops:
                continue
            network.append_edge(NetworkEdge(nodes[i], nodes[j], values[i, j]))

    logger.debug(f"Built network '{name}' with {len(network.nodes)} nodes and {len(network.edges)} edges")
    return network
