# dag.py
from __future__ import annotations

from collections import deque
from typing import Dict, List, Sequence, Set, Tuple

from .errors import InvalidWorkflow
from .job import Job


def build_dag(jobs: Sequence[Job]) -> Tuple[Dict[str, Set[str]], Dict[str, int]]:
    """
    Build adjacency and in-degree maps from a job set.

    Requires:
      - job.name unique
      - every name in job.incoming / job.outgoing present in the set
      - edges recorded on both ends (a in b.incoming iff b in a.outgoing)
    """
    names = [j.name for j in jobs]
    if len(set(names)) != len(names):
        dupes = sorted({n for n in names if names.count(n) > 1})
        raise InvalidWorkflow(f"Duplicate job names found: {dupes}")

    by_name = {j.name: j for j in jobs}
    adj: Dict[str, Set[str]] = {n: set() for n in by_name}
    indeg: Dict[str, int] = {n: 0 for n in by_name}

    for job in jobs:
        for dep in job.incoming:
            if dep not in by_name:
                raise InvalidWorkflow(f"Job '{job.name}' depends on missing job '{dep}'")
            if job.name not in by_name[dep].outgoing:
                raise InvalidWorkflow(
                    f"Edge {dep} -> {job.name} is missing from {dep}.outgoing"
                )
            # Edge dep -> job.name (dep must finish before job)
            if job.name not in adj[dep]:
                adj[dep].add(job.name)
                indeg[job.name] += 1
        for nxt in job.outgoing:
            if nxt not in by_name:
                raise InvalidWorkflow(f"Job '{job.name}' points at missing job '{nxt}'")
            if job.name not in by_name[nxt].incoming:
                raise InvalidWorkflow(
                    f"Edge {job.name} -> {nxt} is missing from {nxt}.incoming"
                )

    return adj, indeg


def topo_levels(adj: Dict[str, Set[str]], indeg: Dict[str, int]) -> List[List[str]]:
    """
    Convert the DAG into topological levels.
    Jobs on one level have no edges between them.
    """
    indeg = dict(indeg)  # copy (we mutate it)
    q = deque(sorted(n for n, d in indeg.items() if d == 0))

    levels: List[List[str]] = []
    processed = 0

    while q:
        level: List[str] = []

        for _ in range(len(q)):
            node = q.popleft()
            level.append(node)
            processed += 1

            for child in sorted(adj.get(node, set())):
                indeg[child] -= 1
                if indeg[child] == 0:
                    q.append(child)

        levels.append(level)

    if processed != len(indeg):
        remaining = sorted(n for n, d in indeg.items() if d > 0)
        raise InvalidWorkflow(f"Job graph has a cycle. Stuck jobs: {remaining}")

    return levels


def validate(jobs: Sequence[Job]) -> List[List[str]]:
    """Check a job set and return its levels. Raises InvalidWorkflow."""
    adj, indeg = build_dag(jobs)
    return topo_levels(adj, indeg)
