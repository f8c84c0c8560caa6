from .mutation_guard import BearerTokenPolicy, MutationGuard, load_auth_policy_from_env

__all__ = ["BearerTokenPolicy", "MutationGuard", "load_auth_policy_from_env"]
