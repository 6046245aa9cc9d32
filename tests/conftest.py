import pytest

from dxilremap.reporting import SilentReporter, set_reporter, set_verbosity


@pytest.fixture(autouse=True)
def _quiet_reporter():
    # reporters bind to the stream current at creation; reset per test
    set_reporter(SilentReporter())
    set_verbosity(0)
    yield
