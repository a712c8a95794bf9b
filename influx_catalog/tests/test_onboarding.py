import pytest
from influxdb_client.rest import ApiException
from urllib3.exceptions import ProtocolError

from influx_catalog.bootstrap.onboarding import Onboarder, bootstrap
from influx_catalog.config_loader import CatalogSettings
from influx_catalog.errors import (
    AlreadyOnboardedError,
    ConfigError,
    OnboardingError,
    OnboardingNotPermittedError,
)
from influx_catalog.tests.fakes import FakeClient, FakeSetupService

URL = "http://localhost:8086"


class ClientFactory:
    def __init__(self):
        self.created = []

    def __call__(self, **kwargs):
        client = FakeClient(**kwargs)
        self.created.append(client)
        return client


@pytest.fixture
def clients():
    return ClientFactory()


def make_onboarder(clients, setup):
    return Onboarder(URL, client_factory=clients, setup_service_factory=setup)


def test_onboard_returns_credential(clients):
    setup = FakeSetupService(token="fresh-token-0001")
    credential = make_onboarder(clients, setup).onboard("opennms", "opennms", "opennms", "password")

    assert credential.token == "fresh-token-0001"
    assert credential.org == "opennms"
    assert credential.bucket == "opennms"
    request = setup.requests[0]
    assert (request.org, request.bucket, request.username, request.password) == \
        ("opennms", "opennms", "opennms", "password")
    # the unauthenticated client carries no token and is closed afterwards
    assert all("token" not in c.kwargs and c.closed for c in clients.created)


def test_already_onboarded_sends_no_setup_request(clients):
    setup = FakeSetupService(allowed=False)
    with pytest.raises(AlreadyOnboardedError) as err:
        make_onboarder(clients, setup).onboard("opennms", "opennms", "opennms", "password")
    assert isinstance(err.value, OnboardingNotPermittedError)
    assert setup.requests == []


def test_lost_onboarding_race_is_already_onboarded(clients):
    setup = FakeSetupService(post_error=ApiException(status=422, reason="onboarding has already been completed"))
    with pytest.raises(AlreadyOnboardedError):
        make_onboarder(clients, setup).onboard("opennms", "opennms", "opennms", "password")
    assert len(setup.requests) == 1


def test_unreachable_server(clients):
    setup = FakeSetupService(get_error=ProtocolError("connection refused"))
    with pytest.raises(OnboardingError):
        make_onboarder(clients, setup).is_onboarding_allowed()


def test_server_error_is_onboarding_error(clients):
    setup = FakeSetupService(post_error=ApiException(status=500, reason="internal"))
    with pytest.raises(OnboardingError) as err:
        make_onboarder(clients, setup).onboard("opennms", "opennms", "opennms", "password")
    assert not isinstance(err.value, AlreadyOnboardedError)


def test_missing_token_in_response(clients):
    setup = FakeSetupService(token=None)
    with pytest.raises(OnboardingError):
        make_onboarder(clients, setup).onboard("opennms", "opennms", "opennms", "password")


def test_empty_arguments_fail_before_any_request(clients):
    setup = FakeSetupService()
    with pytest.raises(ConfigError) as err:
        make_onboarder(clients, setup).onboard("opennms", "", "opennms", "")
    assert err.value.keys == ["bucket", "password"]
    assert clients.created == []


def settings(**overrides):
    values = dict(url=URL, org="opennms", bucket="opennms", username="opennms", password="password")
    values.update(overrides)
    return CatalogSettings(**values)


def test_bootstrap_prefers_configured_token(clients):
    setup = FakeSetupService()
    credential = bootstrap(settings(token="configured-token"), make_onboarder(clients, setup))
    assert credential.token == "configured-token"
    assert setup.checks == 0


def test_bootstrap_onboards_fresh_instance(clients):
    setup = FakeSetupService(token="fresh-token-0002")
    assert bootstrap(settings(), make_onboarder(clients, setup)).token == "fresh-token-0002"


def test_bootstrap_reports_manual_provisioning(clients):
    setup = FakeSetupService(allowed=False)
    with pytest.raises(OnboardingNotPermittedError):
        bootstrap(settings(), make_onboarder(clients, setup))
    assert setup.requests == []


def test_bootstrap_needs_credentials_to_onboard(clients):
    with pytest.raises(ConfigError):
        bootstrap(settings(password=None), make_onboarder(clients, FakeSetupService()))
