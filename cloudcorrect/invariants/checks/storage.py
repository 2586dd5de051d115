"""S3 bucket checks."""

from __future__ import annotations

from typing import Any

from botocore.exceptions import ClientError

from cloudcorrect.config import settings
from cloudcorrect.invariants.checks.registry import register, verdict
from cloudcorrect.invariants.models import Check, CheckResult, Status
from cloudcorrect.providers.aws import Credentials, make_client


@register("S3", "S3_LIFECYCLE_CONFIGURED", required=("bucketName",))
def lifecycle_configured(check: Check, params: dict[str, Any], credentials: Credentials | None) -> CheckResult:
    bucket = str(params["bucketName"])
    region = check.region or settings.default_region
    expected = f"S3 bucket {bucket} has lifecycle rules"

    client = make_client("s3", credentials, region)
    try:
        rules = client.get_bucket_lifecycle_configuration(Bucket=bucket).get("Rules") or []
    except ClientError as e:
        if e.response.get("Error", {}).get("Code") == "NoSuchLifecycleConfiguration":
            rules = []
        else:
            return CheckResult(
                status=Status.FAIL,
                expected=expected,
                observed="Error fetching configuration",
                reason=str(e),
                data={"bucketName": bucket},
            )

    has_rules = len(rules) > 0
    return CheckResult(
        status=verdict(has_rules),
        expected=expected,
        observed=f"{len(rules)} rules found" if has_rules else "No lifecycle rules found",
        reason="Lifecycle policy is active" if has_rules else "Bucket missing lifecycle configuration",
        data={"bucketName": bucket, "rulesCount": len(rules), "region": region},
    )
