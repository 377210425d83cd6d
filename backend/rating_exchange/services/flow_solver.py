"""
Max-flow solver (Dinic) over an integer-capacity network.

Used by the assignment engine as the exact fallback when the randomized
construction keeps hitting dead ends. Edges are stored in paired arrays:
edge i is the forward edge, i ^ 1 its residual twin.
"""

from collections import deque
from typing import List


class FlowNetwork:
    """Directed network with integer capacities."""

    def __init__(self, node_count: int):
        self.node_count = node_count
        self._adjacency: List[List[int]] = [[] for _ in range(node_count)]
        self._head: List[int] = []
        self._residual: List[int] = []
        self._capacity: List[int] = []
        self._level: List[int] = []
        self._cursor: List[int] = []

    def add_edge(self, start: int, end: int, capacity: int) -> int:
        """Add start -> end and return the edge id for later flow lookups."""
        if capacity < 0:
            raise ValueError(f"Negative capacity on edge {start}->{end}")

        edge_id = len(self._head)
        self._head.extend((end, start))
        self._residual.extend((capacity, 0))
        self._capacity.extend((capacity, 0))
        self._adjacency[start].append(edge_id)
        self._adjacency[end].append(edge_id + 1)
        return edge_id

    def flow(self, edge_id: int) -> int:
        return self._capacity[edge_id] - self._residual[edge_id]

    def max_flow(self, source: int, sink: int) -> int:
        """Push as much flow as possible from source to sink and return its value."""
        if source == sink:
            return 0

        total = 0
        while self._build_levels(source, sink):
            self._cursor = [0] * self.node_count
            while True:
                pushed = self._augment(source, sink, float("inf"))
                if not pushed:
                    break
                total += pushed
        return total

    def _build_levels(self, source: int, sink: int) -> bool:
        self._level = [-1] * self.node_count
        self._level[source] = 0
        queue = deque([source])
        while queue:
            node = queue.popleft()
            for edge_id in self._adjacency[node]:
                nxt = self._head[edge_id]
                if self._residual[edge_id] > 0 and self._level[nxt] < 0:
                    self._level[nxt] = self._level[node] + 1
                    queue.append(nxt)
        return self._level[sink] >= 0

    def _augment(self, node: int, sink: int, limit) -> int:
        if node == sink:
            return limit

        edges = self._adjacency[node]
        while self._cursor[node] < len(edges):
            edge_id = edges[self._cursor[node]]
            nxt = self._head[edge_id]
            if self._residual[edge_id] > 0 and self._level[nxt] == self._level[node] + 1:
                pushed = self._augment(nxt, sink, min(limit, self._residual[edge_id]))
                if pushed:
                    self._residual[edge_id] -= pushed
                    self._residual[edge_id ^ 1] += pushed
                    return pushed
            self._cursor[node] += 1
        return 0
