"""
Find cached forms sharing the reference page signature in the form runner's Redis.

Locates a running form-runner-adapter task for the current account's environment,
checks ECS Exec is enabled, runs the cache scan inside the container and prints
the matching forms grouped by content hash. Takes no arguments; configuration
comes from formfinder.json (or $FORMFINDER_CONFIG) when present.
"""
import logging
import sys

from botocore.exceptions import BotoCoreError, ClientError

from formfinder.aws_sessions import AWSSessions
from formfinder.checker import ConfigChecker
from formfinder.config_loader import ConfigLoader
from formfinder.ecs_task_resolver import ECSTaskResolver
from formfinder.exceptions import ExecNotEnabled, FormFinderError, RemoteScriptFailure
from formfinder.payload import ScanRequest, build_command, parse_response
from formfinder.scanner import ScanReport, format_report, group_matches
from formfinder.session import ExecSession

logger = logging.getLogger("find_form")


def run(config):
    aws_sessions = AWSSessions()
    session = aws_sessions.get_session(
        profile_name=config.get("profile"), region_name=config.get("region")
    )
    ecs_client = session.client("ecs")

    task = ECSTaskResolver(config).resolve(aws_sessions.account_id, ecs_client)
    ConfigChecker().validate_all()

    scan_config = config["scan"]
    command = build_command(
        ScanRequest.from_config(scan_config), config["working_dir"]
    )

    logger.info("Running Redis search...")
    with ExecSession(
        ecs_client,
        task.target,
        ssm_client=session.client("ssm"),
        label=task.service_name,
        cluster=task.cluster_arn,
        task=task.task_arn,
        container=task.container,
        command=command,
    ) as exec_session:
        exit_code = exec_session.run()

    total_keys, matches = parse_response(exec_session.output)
    if exit_code != 0:
        logger.warning(f"session-manager-plugin exited with status {exit_code}")

    report = ScanReport(total_keys=total_keys, groups=group_matches(matches))
    print(format_report(report, scan_config["designer_url"], task.environment))
    return 0


def main():
    logging.basicConfig(level=logging.INFO, format="%(message)s", stream=sys.stdout)
    try:
        return run(ConfigLoader().load_config())
    except ExecNotEnabled as e:
        print(f"Error: {e}")
        print("Enable it with:")
        print(f"  {e.remediation}")
    except RemoteScriptFailure as e:
        print(f"Error: {e}")
        if e.details:
            print(e.details)
    except (FormFinderError, ClientError, BotoCoreError) as e:
        print(f"Error: {e}")
    return 1


if __name__ == "__main__":
    sys.exit(main())
