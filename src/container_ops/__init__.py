"""Stage implementations that drive npm, Docker and ``docker compose``.

Every function and class here receives a
:class:`~src.container_ops.runtime.RuntimeContext`; none of them touch
the container runtime through global state.
"""
