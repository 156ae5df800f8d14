"""Kubernetes integration custom exceptions.

Errors fall into two groups: translations of Kubernetes API failures
(connection, auth, not found, conflict, validation) and the terminal states
reported by rollout evaluation, pod lookup and resource merging. Non-terminal
rollout progress is never an error; it is reported as a status message.
"""

from __future__ import annotations

from typing import Any


class KubernetesError(Exception):
    """Base exception for Kubernetes operations.

    Attributes:
        message: Human-readable error message.
        status_code: HTTP status code from Kubernetes API (if applicable).
        resource_type: Kind of resource involved (e.g., "Pod", "Deployment").
        resource_name: Name of the resource involved.
        namespace: Namespace of the resource (if applicable).
    """

    def __init__(
        self,
        message: str,
        status_code: int | None = None,
        resource_type: str | None = None,
        resource_name: str | None = None,
        namespace: str | None = None,
    ) -> None:
        """Initialize KubernetesError.

        Args:
            message: Human-readable error message.
            status_code: HTTP status code from Kubernetes API.
            resource_type: Kind of resource involved.
            resource_name: Name of the resource involved.
            namespace: Namespace of the resource.
        """
        super().__init__(message)
        self.message = message
        self.status_code = status_code
        self.resource_type = resource_type
        self.resource_name = resource_name
        self.namespace = namespace

    def __str__(self) -> str:
        """Return string representation of the error."""
        parts = [self.message]
        if self.status_code:
            parts.append(f"(status: {self.status_code})")
        if self.resource_type and self.resource_name:
            loc = f"[{self.resource_type}/{self.resource_name}"
            if self.namespace:
                loc += f" in {self.namespace}"
            loc += "]"
            parts.append(loc)
        return " ".join(parts)


# =============================================================================
# API translations
# =============================================================================


class KubernetesConnectionError(KubernetesError):
    """Raised when the cluster cannot be reached or kubeconfig cannot be loaded."""

    def __init__(
        self,
        message: str = "Failed to connect to Kubernetes cluster",
        original_error: Exception | None = None,
    ) -> None:
        super().__init__(message=message)
        self.original_error = original_error


class KubernetesAuthError(KubernetesError):
    """Raised on 401/403 responses."""

    def __init__(
        self,
        message: str = "Kubernetes authentication/authorization failed",
        status_code: int | None = 401,
        reason: str | None = None,
    ) -> None:
        super().__init__(message=message, status_code=status_code)
        self.reason = reason


class KubernetesNotFoundError(KubernetesError):
    """Raised when a requested resource does not exist (404)."""

    def __init__(
        self,
        message: str = "Kubernetes resource not found",
        resource_type: str | None = None,
        resource_name: str | None = None,
        namespace: str | None = None,
    ) -> None:
        if resource_type and resource_name:
            message = f"{resource_type} '{resource_name}' not found"
            if namespace:
                message += f" in namespace '{namespace}'"
        super().__init__(
            message=message,
            status_code=404,
            resource_type=resource_type,
            resource_name=resource_name,
            namespace=namespace,
        )


class KubernetesConflictError(KubernetesError):
    """Raised when an update loses a resourceVersion race (409)."""

    def __init__(
        self,
        message: str = "Resource conflict",
        resource_type: str | None = None,
        resource_name: str | None = None,
        namespace: str | None = None,
    ) -> None:
        if resource_type and resource_name:
            message = f"{resource_type} '{resource_name}' was modified concurrently"
            if namespace:
                message += f" in namespace '{namespace}'"
        super().__init__(
            message=message,
            status_code=409,
            resource_type=resource_type,
            resource_name=resource_name,
            namespace=namespace,
        )


class KubernetesValidationError(KubernetesError):
    """Raised when input is rejected as invalid.

    Used both for 400/422 API responses and for locally rejected values
    such as malformed resource quantities.
    """

    def __init__(
        self,
        message: str = "Invalid resource specification",
        validation_errors: dict[str, Any] | None = None,
        status_code: int | None = 422,
    ) -> None:
        """Initialize KubernetesValidationError.

        Args:
            message: Human-readable error message.
            validation_errors: Specific field validation errors.
            status_code: HTTP status code, or None for local validation.
        """
        super().__init__(message=message, status_code=status_code)
        self.validation_errors = validation_errors or {}


# =============================================================================
# Rollout, pod lookup and merge errors
# =============================================================================


class KindNotImplementedError(KubernetesError, NotImplementedError):
    """Raised when a kind has no registered handler for the requested capability.

    The kind registry is a closed allow-list, so this is permanent for the
    given kind and must not be retried.
    """

    def __init__(self, group: str, kind: str, capability: str = "status viewer") -> None:
        """Initialize KindNotImplementedError.

        Args:
            group: API group of the kind ("" for the core group).
            kind: Kind name.
            capability: What was requested for the kind.
        """
        group_kind = f"{kind}.{group}" if group else kind
        super().__init__(
            message=f"no {capability} has been implemented for {group_kind}",
            resource_type=kind,
        )
        self.group = group
        self.kind = kind
        self.capability = capability


class RevisionMismatchError(KubernetesError):
    """Raised when the requested revision differs from the running revision."""

    def __init__(
        self,
        expected: int,
        actual: int,
        resource_type: str | None = None,
        resource_name: str | None = None,
        namespace: str | None = None,
    ) -> None:
        super().__init__(
            message=(
                f"desired revision ({expected}) is different from the running revision ({actual})"
            ),
            resource_type=resource_type,
            resource_name=resource_name,
            namespace=namespace,
        )
        self.expected = expected
        self.actual = actual


class UnsupportedStrategyError(KubernetesError):
    """Raised when a kind/strategy combination has no rollout progress signal."""

    def __init__(
        self,
        strategy: str,
        supported: str = "RollingUpdate",
        resource_type: str | None = None,
        resource_name: str | None = None,
        namespace: str | None = None,
    ) -> None:
        super().__init__(
            message=(
                f"rollout status is only available for {supported} strategy type, "
                f"got {strategy or '<unset>'}"
            ),
            resource_type=resource_type,
            resource_name=resource_name,
            namespace=namespace,
        )
        self.strategy = strategy
        self.supported = supported


class TypeConversionError(KubernetesError):
    """Raised when an unstructured object cannot be decoded into its typed form."""

    def __init__(
        self,
        message: str,
        resource_type: str | None = None,
        resource_name: str | None = None,
        original_error: Exception | None = None,
    ) -> None:
        super().__init__(
            message=message,
            resource_type=resource_type,
            resource_name=resource_name,
        )
        self.original_error = original_error


class InvalidSelectorError(KubernetesError):
    """Raised when an object has no usable pod selector."""


class KubernetesTimeoutError(KubernetesError):
    """Raised when a bounded wait (pod lookup, rollout wait) runs out of time."""

    def __init__(
        self,
        message: str = "Kubernetes operation timed out",
        timeout_seconds: float | None = None,
    ) -> None:
        """Initialize KubernetesTimeoutError.

        Args:
            message: Human-readable error message.
            timeout_seconds: The timeout value that was exceeded.
        """
        if timeout_seconds:
            message = f"{message} (after {timeout_seconds:g}s)"
        super().__init__(message=message)
        self.timeout_seconds = timeout_seconds


class LocatorCancelledError(KubernetesError):
    """Raised when a pod lookup is cancelled by its caller."""

    def __init__(self, message: str = "pod lookup was cancelled") -> None:
        super().__init__(message=message)


class ProgressDeadlineExceededError(KubernetesError):
    """Raised when a Deployment reports that its progress deadline passed."""

    def __init__(self, resource_name: str, namespace: str | None = None) -> None:
        super().__init__(
            message=f'deployment "{resource_name}" exceeded its progress deadline',
            resource_type="Deployment",
            resource_name=resource_name,
            namespace=namespace,
        )
