"""Incremental pose graph solver using scipy.optimize.least_squares.

The solver keeps a persistent graph (every relation solved so far and the
current estimate of every node) and a pending batch of relations and
initial guesses. A solve merges the batch into the graph and re-estimates
the nodes near it:

    minimize sum_k ||r_k(x)||^2

where r_k is the whitened residual of relation k. Like a sliding-window
local bundle adjustment, only the nodes touched by the batch and the most
recently solved nodes (SolverConfig.active_nodes) are free. Relations that
touch a free node take part; the other nodes they reference are held at
their current estimates. The cost of a solve therefore depends on the
window, not on the length of the trajectory. With active_nodes=None every
node is free and the result is the full maximum-likelihood estimate.

Each solve is warm-started from the previous estimates. A solve is atomic:
the new estimates replace the old ones only once the optimization has
converged to a finite result.
"""

from __future__ import annotations

import logging
import threading
from dataclasses import dataclass, field
from typing import Iterable

import numpy as np
from scipy.optimize import least_squares
from scipy.sparse import lil_matrix

from ...config import SolverConfig
from ...errors import SolverDivergenceError
from ...geometry import Pose2
from ..relations import Relation

logger = logging.getLogger(__name__)


@dataclass
class SolveResult:
    """Result of one batched solve."""

    success: bool
    updated_nodes: list[int] = field(default_factory=list)
    num_relations: int = 0
    num_free_nodes: int = 0
    initial_cost: float = 0.0
    final_cost: float = 0.0
    iterations: int = 0
    message: str = ""


class IncrementalPoseGraphSolver:
    """Owns the persistent graph state and applies batches of relations."""

    def __init__(self, config: SolverConfig | None = None) -> None:
        """Initialize an empty graph.

        Args:
            config: Least-squares settings
        """
        self._config = config or SolverConfig()

        # Persistent (solved) state
        self._relations: list[Relation] = []
        self._estimates: dict[int, Pose2] = {}
        # Relation indices per node, and nodes in the order they were first solved
        self._node_relations: dict[int, list[int]] = {}
        self._solve_order: list[int] = []
        self._solved: set[int] = set()

        # Pending batch since the previous solve
        self._pending_relations: list[Relation] = []
        self._pending_guesses: dict[int, Pose2] = {}

        self._lock = threading.RLock()
        self._last_result: SolveResult | None = None

    def add_batch(
        self,
        relations: Iterable[Relation],
        initial_guesses: dict[int, Pose2] | None = None,
    ) -> None:
        """Append relations and initial guesses to the pending batch.

        Args:
            relations: New relations
            initial_guesses: Initial pose of each new node

        Raises:
            ValueError: If a node already has a value
        """
        with self._lock:
            for node, pose in (initial_guesses or {}).items():
                self._stage_guess(node, pose)
            self._pending_relations.extend(relations)

    def add_relation(self, relation: Relation) -> None:
        """Append a single relation to the pending batch."""
        with self._lock:
            self._pending_relations.append(relation)

    def add_initial_guess(self, node: int, pose: Pose2) -> None:
        """Register the initial estimate of a new node."""
        with self._lock:
            self._stage_guess(node, pose)

    def _stage_guess(self, node: int, pose: Pose2) -> None:
        if node in self._estimates or node in self._pending_guesses:
            raise ValueError(f"Node {node} already has a value")
        self._pending_guesses[node] = pose

    def solve(self) -> dict[int, Pose2]:
        """Incorporate the pending batch and re-estimate the nodes near it.

        Returns:
            Estimates of the nodes touched by the consumed batch

        Raises:
            ValueError: If a relation references a node without any value
            SolverDivergenceError: If the optimization fails; the graph and
                the pending batch are left untouched
        """
        with self._lock:
            if not self._pending_relations and not self._pending_guesses:
                return {}

            values = {n: p.to_array() for n, p in self._estimates.items()}
            for node, pose in self._pending_guesses.items():
                values[node] = pose.to_array()

            referenced = {k for r in self._pending_relations for k in r.keys}
            missing = sorted(referenced - values.keys())
            if missing:
                raise ValueError(f"Relations reference nodes without values: {missing}")

            touched = sorted(referenced | self._pending_guesses.keys())
            free = self._free_nodes(touched)
            active = self._active_relations(free)

            optimized, result = self._optimize(active, values, free)

            # Swap in the whole new state at once
            estimates = dict(self._estimates)
            for node, pose in self._pending_guesses.items():
                estimates[node] = pose
            for node, value in optimized.items():
                estimates[node] = Pose2.from_array(value)

            offset = len(self._relations)
            for i, relation in enumerate(self._pending_relations):
                for key in set(relation.keys):
                    self._node_relations.setdefault(key, []).append(offset + i)
            self._relations = self._relations + self._pending_relations
            self._estimates = estimates
            self._solve_order.extend(n for n in touched if n not in self._solved)
            self._solved.update(touched)
            self._pending_relations = []
            self._pending_guesses = {}

            result.updated_nodes = touched
            self._last_result = result
            logger.info(
                "Solved %d relations over %d free nodes (%d total): "
                "cost %.4g -> %.4g (%d evals)",
                result.num_relations,
                result.num_free_nodes,
                len(estimates),
                result.initial_cost,
                result.final_cost,
                result.iterations,
            )
            return {n: estimates[n] for n in touched}

    def _free_nodes(self, touched: list[int]) -> set[int]:
        """Nodes re-optimized by the next solve."""
        if self._config.active_nodes is None:
            return set(self._estimates) | set(touched)
        return set(touched) | set(self._solve_order[-self._config.active_nodes :])

    def _active_relations(self, free: set[int]) -> list[Relation]:
        """Solved relations touching a free node, followed by the pending ones."""
        indices: set[int] = set()
        for node in free:
            indices.update(self._node_relations.get(node, ()))
        return [self._relations[i] for i in sorted(indices)] + self._pending_relations

    def _optimize(
        self,
        relations: list[Relation],
        values: dict[int, np.ndarray],
        free: set[int],
    ) -> tuple[dict[int, np.ndarray], SolveResult]:
        """Run sparse trust-region least squares over the free nodes."""
        node_ids = sorted(free & {k for r in relations for k in r.keys})
        if not node_ids:
            # Only unconstrained initial guesses, nothing to optimize
            return {}, SolveResult(success=True, message="No constrained nodes")
        id_to_idx = {nid: i for i, nid in enumerate(node_ids)}

        # Nodes outside the free set keep their current estimate
        fixed = {k: values[k] for r in relations for k in r.keys if k not in id_to_idx}

        x0 = np.concatenate([values[nid] for nid in node_ids])
        n_residuals = sum(r.dim for r in relations)

        def build_jacobian_sparsity():
            jac = lil_matrix((n_residuals, x0.size), dtype=np.int8)
            row = 0
            for relation in relations:
                for key in relation.keys:
                    if key in id_to_idx:
                        col = 3 * id_to_idx[key]
                        jac[row : row + relation.dim, col : col + 3] = 1
                row += relation.dim
            return jac.tocsr()

        def residuals(params: np.ndarray) -> np.ndarray:
            current = dict(fixed)
            for nid, i in id_to_idx.items():
                current[nid] = params[3 * i : 3 * i + 3]
            return np.concatenate([r.whitened_error(current) for r in relations])

        try:
            result = least_squares(
                residuals,
                x0,
                method="trf",
                jac_sparsity=build_jacobian_sparsity(),
                ftol=self._config.ftol,
                xtol=self._config.xtol,
                gtol=self._config.gtol,
                max_nfev=self._config.max_iterations * x0.size,
            )
        except ValueError as e:
            # least_squares rejects non-finite residuals at the initial point
            raise SolverDivergenceError(f"Pose graph solve failed: {e}") from e

        if not result.success or not np.all(np.isfinite(result.x)):
            raise SolverDivergenceError(
                f"Pose graph solve did not converge: {result.message}"
            )

        initial_cost = 0.5 * float(np.sum(residuals(x0) ** 2))
        optimized = {nid: result.x[3 * i : 3 * i + 3].copy() for nid, i in id_to_idx.items()}
        return optimized, SolveResult(
            success=True,
            num_relations=len(relations),
            num_free_nodes=len(node_ids),
            initial_cost=initial_cost,
            final_cost=float(result.cost),
            iterations=int(result.nfev),
            message=str(result.message),
        )

    def retract(self, relations: Iterable[Relation]) -> int:
        """Remove relations from the pending batch.

        Used to withdraw relations staged for a solve that failed.

        Args:
            relations: Relations previously handed to add_batch/add_relation

        Returns:
            Number of relations removed
        """
        with self._lock:
            ids = {id(r) for r in relations}
            kept = [r for r in self._pending_relations if id(r) not in ids]
            removed = len(self._pending_relations) - len(kept)
            self._pending_relations = kept
            return removed

    def estimate(self, node: int) -> Pose2:
        """Return the current best pose of a solved node.

        Raises:
            KeyError: If no solve has included the node yet
        """
        with self._lock:
            if node not in self._estimates:
                raise KeyError(f"Node {node} has not been solved yet")
            return self._estimates[node]

    @property
    def estimates(self) -> dict[int, Pose2]:
        """Return a copy of all solved estimates."""
        with self._lock:
            return dict(self._estimates)

    @property
    def has_pending(self) -> bool:
        """Return True if there is an unsolved batch."""
        with self._lock:
            return bool(self._pending_relations or self._pending_guesses)

    @property
    def pending_relations(self) -> list[Relation]:
        """Return a copy of the pending relations."""
        with self._lock:
            return list(self._pending_relations)

    @property
    def pending_guesses(self) -> dict[int, Pose2]:
        """Return a copy of the pending initial guesses."""
        with self._lock:
            return dict(self._pending_guesses)

    @property
    def num_pending_relations(self) -> int:
        """Number of relations waiting for the next solve."""
        with self._lock:
            return len(self._pending_relations)

    @property
    def num_relations(self) -> int:
        """Number of relations in the solved graph."""
        with self._lock:
            return len(self._relations)

    @property
    def num_nodes(self) -> int:
        """Number of nodes with a solved estimate."""
        with self._lock:
            return len(self._estimates)

    @property
    def relations(self) -> list[Relation]:
        """Return a copy of the solved relations."""
        with self._lock:
            return list(self._relations)

    @property
    def last_result(self) -> SolveResult | None:
        """Return the result of the most recent successful solve."""
        return self._last_result
