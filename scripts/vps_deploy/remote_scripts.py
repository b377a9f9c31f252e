"""Remote shell scripts and commands sent to the deploy host.

Scripts are fed to `bash -s` over a single SSH session. Values are quoted with
`shlex.quote`; `$`-prefixed names in the templates are remote shell variables.
"""

from __future__ import annotations

import shlex
from dataclasses import dataclass
from enum import Enum
from textwrap import dedent


NGINX_SITE_PATH = "/etc/nginx/sites-available/default"
COMPOSE_PLUGIN_DIR = "/usr/local/lib/docker/cli-plugins"
COMPOSE_RELEASE_URL = "https://github.com/docker/compose/releases/latest/download/docker-compose-linux-$(uname -m)"
DOCKER_INSTALL_URL = "https://get.docker.com"
COMPOSE_FILE = "docker-compose.yml"
DOCKERFILE = "Dockerfile"


class DeployMode(str, Enum):
    COMPOSE = "compose"
    DOCKERFILE = "dockerfile"


@dataclass(frozen=True)
class DeployLayout:
    repo_name: str
    remote_dir: str
    mode: DeployMode

    @classmethod
    def for_repo(cls, *, repo_name: str, ssh_user: str, mode: DeployMode) -> "DeployLayout":
        return cls(repo_name=repo_name, remote_dir=f"/home/{ssh_user}/{repo_name}", mode=mode)

    @property
    def container_name(self) -> str:
        # Docker rejects upper-case image/container references.
        return f"{self.repo_name}-app".lower()

    @property
    def image_name(self) -> str:
        return f"{self.repo_name}-image".lower()


def bootstrap_script() -> str:
    return dedent(
        f"""\
        set -euo pipefail

        . /etc/os-release
        DISTRO=$ID

        case $DISTRO in
          ubuntu|debian)
            PKG_MANAGER="apt install -y"
            sudo apt update -y && sudo apt upgrade -y
            ;;
          fedora)
            PKG_MANAGER="dnf install -y"
            sudo dnf update -y
            ;;
          centos|rhel|rocky|almalinux)
            PKG_MANAGER="yum install -y"
            sudo yum update -y
            ;;
          *)
            echo "Unsupported distro: $DISTRO"
            exit 1
            ;;
        esac

        if ! command -v docker &> /dev/null; then
          curl -fsSL {DOCKER_INSTALL_URL} | sudo sh
        fi

        if ! docker compose version &> /dev/null; then
          sudo mkdir -p {COMPOSE_PLUGIN_DIR}
          sudo curl -SL {COMPOSE_RELEASE_URL} -o {COMPOSE_PLUGIN_DIR}/docker-compose
          sudo chmod +x {COMPOSE_PLUGIN_DIR}/docker-compose
        fi

        if ! command -v nginx &> /dev/null; then
          sudo $PKG_MANAGER nginx
        fi

        sudo usermod -aG docker $USER

        sudo systemctl enable --now docker nginx

        docker --version
        docker compose version
        nginx -v
        """
    )


def deploy_script(*, layout: DeployLayout, app_port: int) -> str:
    remote_dir = shlex.quote(layout.remote_dir)
    if layout.mode is DeployMode.COMPOSE:
        body = dedent(
            """\
            docker compose down -v --rmi all --remove-orphans || true
            docker compose up -d --build
            docker compose ps
            docker compose logs -t --tail=50
            """
        )
    else:
        container = shlex.quote(layout.container_name)
        image = shlex.quote(layout.image_name)
        body = dedent(
            f"""\
            docker stop {container} || true
            docker rm {container} || true
            docker build -t {image} .
            docker run -d --name {container} -p {app_port}:{app_port} {image}
            docker ps | grep {container}
            docker logs {container}
            """
        )
    return f"set -euo pipefail\ncd {remote_dir}\n\n{body}"


def health_probe_cmd(*, port: int) -> str:
    return f"curl -f --max-time 5 http://localhost:{port}"


def render_nginx_config(*, server_name: str, app_port: int) -> str:
    return dedent(
        f"""\
        server {{
            listen 80;
            server_name {server_name};

            location / {{
                proxy_pass http://localhost:{app_port}/;
                proxy_set_header Host $host;
                proxy_set_header X-Real-IP $remote_addr;
                proxy_set_header X-Forwarded-For $proxy_add_x_forwarded_for;
                proxy_set_header X-Forwarded-Proto $scheme;
            }}
        }}

        # For SSL: sudo apt/dnf/yum install certbot python3-certbot-nginx; sudo certbot --nginx
        """
    )


def nginx_upload_cmd() -> str:
    return f"sudo tee {NGINX_SITE_PATH} > /dev/null"


def nginx_reload_cmd() -> str:
    return "sudo nginx -t && sudo systemctl reload nginx"


def docker_service_status_cmd() -> str:
    return "systemctl status docker | grep Active"


def containers_running_cmd(*, layout: DeployLayout) -> str:
    if layout.mode is DeployMode.COMPOSE:
        return f"cd {shlex.quote(layout.remote_dir)} && docker compose ps | grep Up"
    return f"docker ps | grep {shlex.quote(layout.container_name)}"


def proxy_probe_cmd() -> str:
    return "curl -f --max-time 5 http://localhost"


def cleanup_script(*, layout: DeployLayout) -> str:
    remote_dir = shlex.quote(layout.remote_dir)
    container = shlex.quote(layout.container_name)
    image = shlex.quote(layout.image_name)
    # No `set -e`: every teardown step is attempted.
    return dedent(
        f"""\
        cd {remote_dir} || true
        if [ -f "{COMPOSE_FILE}" ]; then
          docker compose down -v --rmi all --remove-orphans || true
        else
          docker stop {container} || true
          docker rm {container} || true
          docker rmi {image} || true
        fi
        cd / || true
        rm -rf {remote_dir}
        sudo systemctl reload nginx || true
        """
    )
