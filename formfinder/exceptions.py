class FormFinderError(Exception):
    """Base class for every terminal failure of a form finder run."""


class ConfigError(FormFinderError):
    pass


class AWSSessionError(FormFinderError):
    pass


class UnknownEnvironment(FormFinderError):
    def __init__(self, account_id):
        self.account_id = account_id
        super().__init__(
            f"Account '{account_id}' does not match any known environment prefix"
        )


class ClusterNotFound(FormFinderError):
    def __init__(self, pattern):
        self.pattern = pattern
        super().__init__(f"No cluster found matching '{pattern}'")


class ServiceNotFound(FormFinderError):
    def __init__(self, pattern, cluster_arn):
        self.pattern = pattern
        self.cluster_arn = cluster_arn
        super().__init__(f"No service matching '{pattern}' in cluster {cluster_arn}")


class NoRunningTask(FormFinderError):
    def __init__(self, service_name):
        self.service_name = service_name
        super().__init__(f"No running tasks found for service '{service_name}'")


class ExecNotEnabled(FormFinderError):
    """ECS Exec is off for the task. ``remediation`` is the command to enable it."""

    def __init__(self, cluster_arn, service_name):
        self.cluster_arn = cluster_arn
        self.service_name = service_name
        self.remediation = (
            f"aws ecs update-service --cluster {cluster_arn} --service {service_name}"
            " --enable-execute-command --force-new-deployment"
        )
        super().__init__("ECS Exec is not enabled")


class ContainerNotFound(FormFinderError):
    def __init__(self, container, task_arn):
        self.container = container
        self.task_arn = task_arn
        super().__init__(f"Container '{container}' not found in task {task_arn}")


class ContainerNotReady(FormFinderError):
    def __init__(self, container, task_arn):
        self.container = container
        self.task_arn = task_arn
        super().__init__(
            f"Container '{container}' in task {task_arn} has no runtime ID yet"
        )


class SessionManagerPluginMissing(FormFinderError):
    def __init__(self):
        super().__init__("The AWS session-manager-plugin is required.")


class RemoteScriptFailure(FormFinderError):
    """The scan inside the container failed. ``details`` holds the remote trace."""

    def __init__(self, message, details=None):
        self.details = details
        super().__init__(message)


class RedisUriNotFound(FormFinderError):
    def __init__(self, names):
        self.names = list(names)
        super().__init__(
            "Could not find Redis URI in environment variables "
            f"(looked for {', '.join(self.names) or 'nothing'})"
        )

