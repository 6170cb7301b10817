from unittest.mock import MagicMock, patch

import pytest
from botocore.exceptions import NoCredentialsError

from formfinder.aws_sessions import AWSSessions
from formfinder.exceptions import AWSSessionError


class TestAWSSessions:
    @patch("formfinder.aws_sessions.boto3.Session")
    def test_get_session_default(self, mock_session_class):
        mock_session = MagicMock()
        mock_session.client.return_value.get_caller_identity.return_value = {
            "Account": "960123456789"
        }
        mock_session_class.return_value = mock_session

        sessions = AWSSessions()
        session = sessions.get_session()

        assert session is mock_session
        mock_session_class.assert_called_once_with()
        mock_session.client.assert_called_once_with("sts")
        assert sessions.account_id == "960123456789"

    @patch("formfinder.aws_sessions.boto3.Session")
    def test_get_session_cached(self, mock_session_class):
        sessions = AWSSessions()
        first = sessions.get_session(profile_name="test", region_name="eu-west-2")
        second = sessions.get_session(profile_name="test", region_name="eu-west-2")
        assert first is second
        mock_session_class.assert_called_once_with(
            profile_name="test", region_name="eu-west-2"
        )

    @patch("formfinder.aws_sessions.boto3.Session")
    def test_create_session_no_credentials(self, mock_session_class):
        mock_session_class.return_value.client.return_value.get_caller_identity.side_effect = (
            NoCredentialsError()
        )
        with pytest.raises(AWSSessionError, match="profile 'default'"):
            AWSSessions().get_session()

    def test_account_id_before_session(self):
        with pytest.raises(AWSSessionError, match="No AWS session"):
            AWSSessions().account_id
