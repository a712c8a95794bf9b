# influx_catalog/bootstrap/onboarding.py
# One-time provisioning of organization, bucket and user on a fresh InfluxDB instance.
# Provisioning mutates server state and is never retried automatically.
from typing import Optional

from influxdb_client import InfluxDBClient, OnboardingRequest, SetupService
from influxdb_client.client.exceptions import InfluxDBError
from loguru import logger
from urllib3.exceptions import HTTPError

from influx_catalog.errors import (
    AlreadyOnboardedError,
    ConfigError,
    OnboardingError,
    OnboardingNotPermittedError,
)
from influx_catalog.logger import mask_token
from influx_catalog.session import Credential, http_status


class Onboarder:
    """
    Talks to the /api/v2/setup endpoint of an instance that has no credentials yet.

    Each call opens its own short-lived, unauthenticated client.
    """

    def __init__(self, url: str, timeout_ms: int = 10_000, client_factory=None,
                 setup_service_factory=None):
        if not url:
            raise ConfigError("Onboarding url must not be empty", keys=["url"])
        self.url = url
        self.timeout_ms = timeout_ms
        self._client_factory = client_factory or InfluxDBClient
        self._setup_service_factory = setup_service_factory or SetupService

    def _setup_call(self, action: str, call):
        with self._client_factory(url=self.url, timeout=self.timeout_ms) as client:
            service = self._setup_service_factory(client.api_client)
            try:
                return call(service)
            except InfluxDBError as exc:
                if http_status(exc) == 422:
                    raise AlreadyOnboardedError(
                        f"{self.url} is already onboarded", details={"status": 422}) from exc
                raise OnboardingError(f"{action} failed on {self.url}: {exc}",
                                      details={"status": http_status(exc)}) from exc
            except HTTPError as exc:
                raise OnboardingError(f"{action} failed, {self.url} unreachable: {exc}") from exc

    def is_onboarding_allowed(self) -> bool:
        setup = self._setup_call("Onboarding check", lambda service: service.get_setup())
        return bool(getattr(setup, "allowed", False))

    def onboard(self, org: str, bucket: str, username: str, password: str,
                retention_seconds: Optional[int] = None) -> Credential:
        """
        Create the initial user, organization and bucket and return the access token.

        Raises:
            ConfigError: an argument is empty (nothing is sent)
            AlreadyOnboardedError: the instance was provisioned before; no setup request is sent
            OnboardingError: transport failure or unexpected server response
        """
        args = {"org": org, "bucket": bucket, "username": username, "password": password}
        missing = [k for k, v in args.items() if not v]
        if missing:
            raise ConfigError(f"Onboarding needs non-empty {', '.join(missing)}", keys=missing)

        logger.info("Checking preconditions on {}", self.url)
        if not self.is_onboarding_allowed():
            logger.warning("Onboarding via api is not allowed on {}, set the account up manually", self.url)
            raise AlreadyOnboardedError(f"{self.url} is already onboarded")

        logger.info("Create account with user={}, organization={}, bucket={} on url={}",
                    username, org, bucket, self.url)
        request = OnboardingRequest(username=username, password=password, org=org, bucket=bucket,
                                    retention_period_seconds=retention_seconds)
        response = self._setup_call("Onboarding", lambda service: service.post_setup(onboarding_request=request))

        auth = getattr(response, "auth", None)
        token = getattr(auth, "token", None)
        if not token:
            raise OnboardingError(f"Onboarding on {self.url} returned no access token")
        logger.info("Create account: ok (token {})", mask_token(token))
        return Credential(token=token, org=org, bucket=bucket, user=username)


def bootstrap(settings, onboarder: Optional[Onboarder] = None) -> Credential:
    """
    Idempotent credential lookup for a configured instance.

    Uses the configured token when there is one, onboards when the instance still allows it,
    and otherwise reports that the account has to be provisioned out-of-band.
    """
    if settings.token:
        logger.debug("Using configured token {}", mask_token(settings.token))
        return Credential(token=settings.token, org=settings.org, bucket=settings.bucket, user=settings.username)

    settings.require_onboarding_fields()
    onboarder = onboarder or Onboarder(settings.url, timeout_ms=settings.timeout_ms)
    if not onboarder.is_onboarding_allowed():
        raise OnboardingNotPermittedError(
            f"{settings.url} is already onboarded and no INFLUX_TOKEN is configured; "
            "provision a token manually")
    return onboarder.onboard(settings.org, settings.bucket, settings.username, settings.password)
