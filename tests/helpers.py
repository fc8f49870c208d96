# tests/helpers.py
from eshaafi.exceptions import VideoProvisioningError
from eshaafi.security import create_token_for_user


def auth_headers(user):
    return {"Authorization": f"Bearer {create_token_for_user(user)}"}


class FakeProvisioner:
    """Stands in for the 100ms client; records the seeds it was asked for."""

    def __init__(self, code="ABC123", fail=False):
        self.code = code
        self.fail = fail
        self.seeds = []

    async def provision_room(self, seed):
        self.seeds.append(seed)
        if self.fail:
            raise VideoProvisioningError("Video provider is unreachable")
        return self.code

    async def aclose(self):
        pass
