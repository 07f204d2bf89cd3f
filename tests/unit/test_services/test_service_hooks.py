"""Unit tests for post-install hooks."""

import pytest

from damp.services.service_hooks import caddy_post_install, get_post_install_hook, wait_for_file


@pytest.mark.unit
class TestHooks:

    def test_registry(self):
        assert get_post_install_hook("caddy") is caddy_post_install
        assert get_post_install_hook("redis") is None

    async def test_wait_for_file_found(self, mock_docker):
        mock_docker.exec_in_container.side_effect = [(1, "", ""), (0, "", "")]

        assert await wait_for_file(mock_docker, "damp-web", "/x", timeout=1, poll_interval=0.001)
        assert mock_docker.exec_in_container.await_count == 2

    async def test_wait_for_file_timeout(self, mock_docker):
        mock_docker.exec_in_container.return_value = (1, "", "")

        assert not await wait_for_file(mock_docker, "damp-web", "/x", timeout=0.01, poll_interval=0.001)

    async def test_caddy_bootstrap(self, mock_docker, settings):
        metadata = await caddy_post_install(mock_docker, settings, "damp-web")

        assert metadata == {"cert_available": True, "root_cert_path": settings.PROXY_ROOT_CERT_PATH}
        first_call = mock_docker.exec_in_container.await_args_list[0]
        assert "https://damp.local {" in first_call.args[1][2]
        last_call = mock_docker.exec_in_container.await_args_list[-1]
        assert last_call.args[1] == ["test", "-f", settings.PROXY_ROOT_CERT_PATH]
