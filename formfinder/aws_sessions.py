import logging

import boto3
from botocore.exceptions import NoCredentialsError, PartialCredentialsError, ClientError

from .exceptions import AWSSessionError


class AWSSessions:
    def __init__(self):
        # This is put here due to https://github.com/boto/botocore/issues/1841
        boto3.set_stream_logger(name="botocore.credentials", level=logging.ERROR)

        self.session = None
        self.identity = None

    def get_session(self, profile_name=None, region_name=None):
        if not self.session:
            self.session = self.create_session(
                profile_name=profile_name, region_name=region_name
            )
        return self.session

    def create_session(self, profile_name=None, region_name=None):
        kwargs = {}
        if profile_name is not None:
            kwargs["profile_name"] = profile_name
        if region_name is not None:
            kwargs["region_name"] = region_name
        try:
            session = boto3.Session(**kwargs)
            self.identity = session.client("sts").get_caller_identity()
            return session
        except (
            NoCredentialsError,
            PartialCredentialsError,
            ClientError,
            Exception,
        ) as e:
            label = profile_name or "default"
            raise AWSSessionError(
                f"Failed to create AWS session with profile '{label}': {e}"
            )

    @property
    def account_id(self):
        if self.identity is None:
            raise AWSSessionError("No AWS session has been created yet")
        return self.identity["Account"]
