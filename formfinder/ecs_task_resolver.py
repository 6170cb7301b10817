import logging
from dataclasses import dataclass

from .exceptions import (
    ClusterNotFound,
    ContainerNotFound,
    ContainerNotReady,
    ExecNotEnabled,
    NoRunningTask,
    ServiceNotFound,
    UnknownEnvironment,
)

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class ResolvedTask:
    environment: str
    cluster_arn: str
    service_arn: str
    service_name: str
    task_arn: str
    container: str
    runtime_id: str

    @property
    def cluster_name(self):
        return self.cluster_arn.split("/")[-1]

    @property
    def task_id(self):
        return self.task_arn.split("/")[-1]

    @property
    def target(self):
        """Session Manager target for ECS Exec: ecs:<cluster>_<task id>_<runtime id>"""
        return f"ecs:{self.cluster_name}_{self.task_id}_{self.runtime_id}"


def environment_for_account(account_id, environments):
    """Map an account ID onto an environment label by prefix, or None."""
    for prefix, environment in environments.items():
        if account_id.startswith(prefix):
            return environment
    return None


def find_cluster(ecs_client, environment, cluster_match):
    pattern = cluster_match.format(environment=environment)
    for cluster_arn in ecs_client.list_clusters()["clusterArns"]:
        if pattern in cluster_arn:
            return cluster_arn
    raise ClusterNotFound(pattern)


def find_service(ecs_client, cluster_arn, service_match):
    """Return (service_arn, service_name) of the first service matching."""
    for service_arn in ecs_client.list_services(cluster=cluster_arn)["serviceArns"]:
        if service_match in service_arn:
            return service_arn, service_arn.split("/")[-1]
    raise ServiceNotFound(service_match, cluster_arn)


def find_running_task(ecs_client, cluster_arn, service_name):
    task_arns = ecs_client.list_tasks(
        cluster=cluster_arn, serviceName=service_name, desiredStatus="RUNNING"
    ).get("taskArns")
    if not task_arns:
        raise NoRunningTask(service_name)
    return task_arns[0]


def describe_task(ecs_client, cluster_arn, task_arn, service_name):
    tasks = ecs_client.describe_tasks(cluster=cluster_arn, tasks=[task_arn]).get(
        "tasks"
    )
    if not tasks:
        raise NoRunningTask(service_name)
    return tasks[0]


def check_exec_enabled(task_desc, cluster_arn):
    """
    Raise ExecNotEnabled unless the task allows ECS Exec. The service named in the
    remediation comes from the task's group, which reads "service:<name>".
    """
    if task_desc.get("enableExecuteCommand") is not True:
        group = task_desc.get("group", "")
        raise ExecNotEnabled(cluster_arn, group.replace("service:", "", 1))


def find_runtime_id(task_desc, container_name):
    for container in task_desc.get("containers", []):
        if container.get("name") == container_name:
            if not container.get("runtimeId"):
                raise ContainerNotReady(container_name, task_desc.get("taskArn"))
            return container["runtimeId"]
    raise ContainerNotFound(container_name, task_desc.get("taskArn"))


class ECSTaskResolver:
    def __init__(self, config):
        self.environments = config["environments"]
        self.cluster_match = config["cluster_match"]
        self.service_match = config["service_match"]
        self.container = config["container"]

    def resolve_environment(self, account_id):
        environment = environment_for_account(account_id, self.environments)
        if environment is None:
            raise UnknownEnvironment(account_id)
        return environment

    def resolve(self, account_id, ecs_client):
        """
        Walk account -> environment -> cluster -> service -> running task and check
        that ECS Exec is enabled. The first failing stage raises.
        """
        environment = self.resolve_environment(account_id)
        logger.info(f"Environment: {environment}")

        logger.info("Finding ECS cluster...")
        cluster_arn = find_cluster(ecs_client, environment, self.cluster_match)
        logger.info(f"Cluster: {cluster_arn}")

        logger.info("Finding Form Runner service...")
        service_arn, service_name = find_service(
            ecs_client, cluster_arn, self.service_match
        )
        logger.info(f"Service: {service_name}")

        logger.info("Finding running task...")
        task_arn = find_running_task(ecs_client, cluster_arn, service_name)
        logger.info(f"Task ID: {task_arn.split('/')[-1]}")

        task_desc = describe_task(ecs_client, cluster_arn, task_arn, service_name)
        check_exec_enabled(task_desc, cluster_arn)
        logger.info("ECS Exec is enabled")

        return ResolvedTask(
            environment=environment,
            cluster_arn=cluster_arn,
            service_arn=service_arn,
            service_name=service_name,
            task_arn=task_arn,
            container=self.container,
            runtime_id=find_runtime_id(task_desc, self.container),
        )
