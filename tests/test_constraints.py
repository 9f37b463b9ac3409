"""Tests for folding bounds into inequality rows."""

import jax
import jax.numpy as jnp
import numpy as np

from asqp_jax import augment_inequalities, bound_rows, create_problem

jax.config.update("jax_enable_x64", True)


class TestBoundRows:
    def test_lower_then_upper(self):
        lower = jnp.array([0.0, -1.0])
        upper = jnp.array([2.0, 3.0])

        A, b = bound_rows(2, lower, upper)

        np.testing.assert_array_equal(
            A,
            [[-1.0, 0.0], [0.0, -1.0], [1.0, 0.0], [0.0, 1.0]],
        )
        np.testing.assert_array_equal(b, [0.0, 1.0, 2.0, 3.0])

    def test_upper_only(self):
        A, b = bound_rows(3, None, jnp.array([1.0, 2.0, 3.0]))

        np.testing.assert_array_equal(A, np.eye(3))
        np.testing.assert_array_equal(b, [1.0, 2.0, 3.0])

    def test_no_bounds(self):
        A, b = bound_rows(3, None, None)

        assert A.shape == (0, 3)
        assert b.shape == (0,)

    def test_rows_encode_bounds(self):
        """A point inside the box satisfies every row, one outside does not."""
        lower = jnp.array([-1.0, -1.0])
        upper = jnp.array([1.0, 1.0])
        A, b = bound_rows(2, lower, upper)

        assert bool(jnp.all(A @ jnp.array([0.5, -0.5]) <= b))
        assert not bool(jnp.all(A @ jnp.array([1.5, 0.0]) <= b))


class TestAugmentInequalities:
    def test_bounds_follow_problem_rows(self):
        problem = create_problem(
            lambda cfg: cfg.minimizing(jnp.eye(2), jnp.zeros(2))
            .with_inequality(jnp.array([[1.0, 1.0]]), jnp.array([4.0]))
            .with_lower_bounds(jnp.array([0.0, 0.0]))
        )

        A, b = augment_inequalities(problem)

        np.testing.assert_array_equal(A, [[1.0, 1.0], [-1.0, 0.0], [0.0, -1.0]])
        np.testing.assert_array_equal(b, [4.0, 0.0, 0.0])

    def test_problem_is_not_modified(self):
        problem = create_problem(
            lambda cfg: cfg.minimizing(jnp.eye(2), jnp.zeros(2))
            .with_inequality(jnp.array([[1.0, 1.0]]), jnp.array([4.0]))
            .with_upper_bounds(jnp.array([1.0, 1.0]))
        )

        augment_inequalities(problem)

        assert problem.n_ineq_constraints == 1
        np.testing.assert_array_equal(problem.vector_b_ineq, [4.0])

    def test_without_bounds_is_unchanged(self):
        problem = create_problem(
            lambda cfg: cfg.with_inequality(jnp.array([[1.0, -1.0]]), jnp.array([0.0]))
        )

        A, b = augment_inequalities(problem)

        np.testing.assert_array_equal(A, problem.matrix_a_ineq)
        np.testing.assert_array_equal(b, problem.vector_b_ineq)
