"""AWS credential boundary and boto3 client factory.

All provider clients share a bounded timeout and have botocore's automatic
retries disabled; a slow or failing call surfaces once, as an exception, to
the check that made it.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Any

import boto3
from botocore.config import Config
from botocore.exceptions import BotoCoreError, ClientError

from cloudcorrect.config import settings
from cloudcorrect.invariants.models import CloudAccount, CredentialError

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class Credentials:
    """Resolved credentials for exactly one account."""

    access_key_id: str
    secret_access_key: str
    session_token: str | None = None

    def __repr__(self) -> str:
        return f"Credentials(access_key_id={self.access_key_id!r}, session={self.session_token is not None})"


def client_config() -> Config:
    return Config(
        connect_timeout=settings.provider_connect_timeout,
        read_timeout=settings.provider_read_timeout,
        retries={"total_max_attempts": 1, "mode": "standard"},
    )


def make_client(service_name: str, credentials: Credentials | None, region: str | None = None) -> Any:
    """Build a boto3 client for ``service_name`` bound to the account's credentials."""
    if credentials is None:
        raise CredentialError(f"No credentials available for {service_name}")
    return boto3.client(
        service_name,
        region_name=region or settings.default_region,
        aws_access_key_id=credentials.access_key_id,
        aws_secret_access_key=credentials.secret_access_key,
        aws_session_token=credentials.session_token,
        config=client_config(),
    )


def resolve_credentials(account: CloudAccount) -> Credentials:
    """Produce credentials for ``account`` from stored keys or by assuming its role."""
    method = (account.auth_method or "").upper()

    if method == "KEYS":
        if not account.access_key_id or not account.secret_access_key:
            raise CredentialError(f"Access key or secret key missing for account {account.id}")
        return Credentials(account.access_key_id, account.secret_access_key)

    if method == "ROLE":
        if not account.role_arn or not account.external_id:
            raise CredentialError(f"Role ARN or external ID missing for account {account.id}")
        sts = boto3.client("sts", region_name=settings.default_region, config=client_config())
        try:
            resp = sts.assume_role(
                RoleArn=account.role_arn,
                ExternalId=account.external_id,
                RoleSessionName=settings.sts_session_name,
            )
        except (ClientError, BotoCoreError) as e:
            raise CredentialError(f"Failed to assume role {account.role_arn}: {e}") from e

        creds = resp.get("Credentials")
        if not creds:
            raise CredentialError(f"Failed to assume role {account.role_arn}")
        logger.debug("Assumed role %s for account %s", account.role_arn, account.id)
        return Credentials(
            creds["AccessKeyId"], creds["SecretAccessKey"], creds.get("SessionToken"),
        )

    raise CredentialError(f"Unsupported auth method: {account.auth_method}")
