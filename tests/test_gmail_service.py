from __future__ import annotations

from unittest.mock import MagicMock, patch

import httplib2
import pytest
from google.auth.exceptions import RefreshError
from googleapiclient.errors import HttpError
from oauthlib.oauth2.rfc6749.errors import AccessDeniedError

from models.label_record import LabelRecord
from services.errors import RemoteUnavailable
from services.gmail_service import GmailService


def _service(config):
    auth = MagicMock()
    auth.authenticate.return_value = MagicMock(name="creds")
    return GmailService(config, auth), auth


@pytest.fixture
def config():
    config = MagicMock()
    config.user_id = "me"
    return config


def test_list_message_ids_passes_label_and_page_size(config) -> None:
    with patch("services.gmail_service.build") as build:
        client = build.return_value
        client.users().messages().list().execute.return_value = {"messages": [{"id": "a"}, {"id": "b"}]}
        gmail, _ = _service(config)

        assert gmail.list_message_ids("Label_1", 100) == ["a", "b"]
        client.users().messages().list.assert_called_with(userId="me", labelIds=["Label_1"], maxResults=100)


def test_unknown_label_lists_nothing(config) -> None:
    with patch("services.gmail_service.build") as build:
        build.return_value.users().messages().list().execute.return_value = {"resultSizeEstimate": 0}
        gmail, _ = _service(config)

        assert gmail.list_message_ids("Label_missing", 100) == []


def test_fetch_details_parses_response(config) -> None:
    with patch("services.gmail_service.build") as build:
        build.return_value.users().messages().get().execute.return_value = {
            "id": "a",
            "internalDate": "1000",
            "payload": {"headers": [{"name": "From", "value": "Jane Doe <jane@x.com>"}]},
        }
        gmail, _ = _service(config)

        record = gmail.fetch_details("a")

    assert record.sender == "Jane Doe"
    assert record.subject == "(No Subject)"


def test_list_labels(config) -> None:
    with patch("services.gmail_service.build") as build:
        build.return_value.users().labels().list().execute.return_value = {
            "labels": [{"id": "INBOX", "name": "INBOX"}, {"id": "Label_1", "name": "Bamboobox"}]
        }
        gmail, _ = _service(config)

        assert gmail.list_labels() == [LabelRecord("INBOX", "INBOX"), LabelRecord("Label_1", "Bamboobox")]


def test_http_errors_become_remote_unavailable(config) -> None:
    error = HttpError(httplib2.Response({"status": "403"}), b"quota exceeded")
    with patch("services.gmail_service.build") as build:
        build.return_value.users().messages().get().execute.side_effect = error
        gmail, _ = _service(config)

        with pytest.raises(RemoteUnavailable):
            gmail.fetch_details("a")


def test_credentials_are_acquired_once(config) -> None:
    with patch("services.gmail_service.build") as build:
        build.return_value.users().labels().list().execute.return_value = {"labels": []}
        gmail, auth = _service(config)

        gmail.list_labels()
        gmail.list_labels()

    auth.authenticate.assert_called_once_with()


def test_authenticate_forces_consent_and_rebuilds_client(config) -> None:
    with patch("services.gmail_service.build") as build:
        build.return_value.users().labels().list().execute.return_value = {"labels": []}
        gmail, auth = _service(config)
        gmail.list_labels()

        gmail.authenticate(force=True)
        gmail.list_labels()

    auth.authenticate.assert_any_call(force=True)
    assert build.call_count == 2


def test_network_errors_become_remote_unavailable(config) -> None:
    with patch("services.gmail_service.build") as build:
        build.return_value.users().messages().list().execute.side_effect = httplib2.ServerNotFoundError(
            "Unable to find the server at gmail.googleapis.com"
        )
        gmail, _ = _service(config)

        with pytest.raises(RemoteUnavailable, match="gmail.googleapis.com"):
            gmail.list_message_ids("Label_1", 100)


@pytest.mark.parametrize(
    "error",
    [
        FileNotFoundError("credentials.json"),
        RefreshError("invalid_grant: Token has been expired or revoked."),
        AccessDeniedError("access_denied"),
    ],
)
def test_forced_authentication_failures_become_remote_unavailable(config, error) -> None:
    gmail, auth = _service(config)
    auth.authenticate.side_effect = error

    with pytest.raises(RemoteUnavailable, match="authenticate with Gmail"):
        gmail.authenticate(force=True)
