"""
Bastion host provisioning.

Installs the operator toolchain (ansible, kubectl, aws cli v2, helm, velero)
on a fresh Amazon Linux instance. Every tool checks whether it is already on
the PATH before installing, so the run can be repeated safely.
"""
import logging
import os
import shutil
import subprocess
from typing import Dict, List, Optional, Sequence

logger = logging.getLogger(__name__)

KUBECTL_VERSION = "v1.32.3"
HELM_VERSION = "v3.17.2"
VELERO_VERSION = "v1.10.1-rc.1"

BIN_DIR = "/usr/bin"
WORK_DIR = "/tmp"
SYSTEM_RELEASE = "/etc/system-release"

USAGE = f"""\
This installs essential tools on the bastion host:
  - kubectl (Kubernetes CLI)
  - aws (AWS CLI v2)
  - helm (Kubernetes package manager)
  - velero (Kubernetes backup tool)
  - ansible (automation tool)

Tools end up in {BIN_DIR}/. Must be run with sudo privileges.

Example:
  sudo efsclean install-bastion
"""


class InstallError(Exception):
    pass


def run(cmd: Sequence[str], cwd: Optional[str] = None, check: bool = True) -> subprocess.CompletedProcess:
    logger.debug("Running: %s", " ".join(cmd))
    try:
        return subprocess.run(list(cmd), cwd=cwd, capture_output=True, text=True, check=check)
    except subprocess.CalledProcessError as e:
        raise InstallError(f"{' '.join(cmd)} exited with {e.returncode}: {(e.stderr or '').strip()}") from e
    except FileNotFoundError as e:
        raise InstallError(f"command not found: {cmd[0]}") from e


def is_amazon_linux_2023(release_file: str = SYSTEM_RELEASE) -> bool:
    try:
        with open(release_file) as f:
            return "Amazon Linux release 2023" in f.read()
    except OSError:
        return False


class Tool:
    """A single CLI tool on the bastion, installed at most once."""

    name = ""
    binary = ""
    version_args: List[str] = ["--version"]

    def is_installed(self) -> bool:
        return shutil.which(self.binary) is not None

    def version(self) -> str:
        try:
            proc = run([self.binary, *self.version_args], check=False)
        except InstallError:
            return "version check failed"
        out = (proc.stdout or proc.stderr or "").strip()
        return out.splitlines()[0] if out else "version check failed"

    def install(self) -> None:
        raise NotImplementedError


class Ansible(Tool):
    name = "ansible"
    binary = "ansible"
    collections = ["kubernetes.core", "community.general"]

    def __init__(self, al2023: Optional[bool] = None):
        self.al2023 = is_amazon_linux_2023() if al2023 is None else al2023

    def install(self) -> None:
        if self.al2023:
            run(["dnf", "install", "-y", "ansible-core"])
        else:
            run(["amazon-linux-extras", "install", "epel", "-y"])
            run(["amazon-linux-extras", "install", "ansible2", "-y"])

        if not self.is_installed():
            raise InstallError("Ansible installation failed")

        if shutil.which("ansible-galaxy") is None:
            logger.warning("ansible-galaxy not found, skipping collection installation")
            return
        for collection in self.collections:
            run(["ansible-galaxy", "collection", "install", collection, "--force"])
        logger.info("Ansible collections installed successfully")


class Kubectl(Tool):
    name = "kubectl"
    binary = "kubectl"
    version_args = ["version", "--client"]

    def install(self) -> None:
        url = f"https://dl.k8s.io/release/{KUBECTL_VERSION}/bin/linux/amd64/kubectl"
        run(["curl", "-LO", url], cwd=WORK_DIR)
        run(["install", "-o", "root", "-g", "root", "-m", "0755", "kubectl", f"{BIN_DIR}/kubectl"], cwd=WORK_DIR)


class AwsCli(Tool):
    name = "aws"
    binary = "aws"

    def is_installed(self) -> bool:
        if not super().is_installed():
            return False
        # v1 gets replaced
        current = self.version()
        if "aws-cli/2" in current:
            return True
        logger.warning(f"AWS CLI v1 detected ({current}), upgrading to v2...")
        return False

    def install(self) -> None:
        run(["curl", "https://awscli.amazonaws.com/awscli-exe-linux-x86_64.zip", "-o", "awscliv2.zip"], cwd=WORK_DIR)
        run(["rm", "-rf", "aws", "awscliv2"], cwd=WORK_DIR)
        run(["unzip", "-o", "awscliv2.zip"], cwd=WORK_DIR)
        run(["./aws/install", "--bin-dir", BIN_DIR, "--install-dir", f"{BIN_DIR}/aws-cli", "--update"], cwd=WORK_DIR)
        run(["rm", "-rf", "awscliv2.zip", "aws"], cwd=WORK_DIR)


class Helm(Tool):
    name = "helm"
    binary = "helm"
    version_args = ["version", "--short"]

    def install(self) -> None:
        tarball = f"helm-{HELM_VERSION}-linux-amd64.tar.gz"
        run(["wget", f"https://get.helm.sh/{tarball}"], cwd=WORK_DIR)
        run(["tar", "-xzf", tarball], cwd=WORK_DIR)
        run(["mv", "-f", "linux-amd64/helm", f"{BIN_DIR}/helm"], cwd=WORK_DIR)
        run(["rm", "-rf", tarball, "linux-amd64"], cwd=WORK_DIR)


class Velero(Tool):
    name = "velero"
    binary = "velero"
    version_args = ["version", "--client-only"]

    def install(self) -> None:
        release = f"velero-{VELERO_VERSION}-linux-amd64"
        url = f"https://github.com/vmware-tanzu/velero/releases/download/{VELERO_VERSION}/{release}.tar.gz"
        run(["wget", url], cwd=WORK_DIR)
        run(["tar", "zxf", f"{release}.tar.gz"], cwd=WORK_DIR)
        run(["mv", "-f", f"{release}/velero", f"{BIN_DIR}/"], cwd=WORK_DIR)
        run(["rm", "-rf", release, f"{release}.tar.gz"], cwd=WORK_DIR)


def default_tools(al2023: Optional[bool] = None) -> List[Tool]:
    # install order matters, ansible first like the original runbook
    return [Ansible(al2023), Kubectl(), AwsCli(), Helm(), Velero()]


def update_system(al2023: Optional[bool] = None) -> None:
    logger.info("Updating system packages...")
    al2023 = is_amazon_linux_2023() if al2023 is None else al2023
    packages = ["curl", "tar", "python3", "git", "unzip", "wget", "python3-pip"]

    run(["yum", "update", "-y"])
    if al2023:
        logger.info("Detected Amazon Linux 2023, handling curl conflict...")
        # curl-minimal blocks the full curl package, both removals may no-op
        run(["dnf", "remove", "-y", "curl-minimal", "--allowerasing"], check=False)
        run(["rpm", "-e", "--nodeps", "curl-minimal"], check=False)
        run(["dnf", "install", "-y", *packages])
    else:
        run(["yum", "install", "-y", *packages])
    # python deps for ansible's k8s module
    run(["pip3", "install", "kubernetes", "PyYAML", "jsonpatch"])


def setup_kubectl_config(home_dirs: Optional[Dict[str, str]] = None) -> None:
    logger.info("Setting up kubectl configuration directories...")
    home_dirs = home_dirs if home_dirs is not None else {"root": "/root", "ec2-user": "/home/ec2-user"}
    for user, home in home_dirs.items():
        if user != "root" and not os.path.isdir(home):
            continue
        kube_dir = os.path.join(home, ".kube")
        os.makedirs(kube_dir, exist_ok=True)
        os.chmod(kube_dir, 0o755)
        if user != "root":
            shutil.chown(kube_dir, user=user, group=user)
    logger.info("kubectl configuration directories created")


def install_tool(tool: Tool) -> bool:
    logger.info(f"Installing {tool.name}...")
    if tool.is_installed():
        logger.warning(f"{tool.name} is already installed: {tool.version()}")
        return True
    try:
        tool.install()
    except InstallError as e:
        logger.error(f"{tool.name} installation failed: {e}")
        return False
    if not tool.is_installed():
        logger.error(f"{tool.name} installation failed")
        return False
    logger.info(f"{tool.name} installed successfully: {tool.version()}")
    return True


def verify(tools: List[Tool]) -> Dict[str, bool]:
    logger.info("Verifying all tool installations...")
    report = {}
    for tool in tools:
        present = tool.is_installed()
        if present:
            logger.info(f"✓ {tool.name}: {tool.version()}")
        else:
            logger.error(f"✗ {tool.name}: not found")
        report[tool.name] = present
    return report


def run_install(tools: Optional[List[Tool]] = None, al2023: Optional[bool] = None) -> int:
    """Full bastion provisioning. Returns a process exit code."""
    if os.geteuid() != 0:
        logger.error("This must be run as root or with sudo privileges")
        return 1

    logger.info("Starting bastion tools installation...")
    al2023 = is_amazon_linux_2023() if al2023 is None else al2023
    tools = tools if tools is not None else default_tools(al2023)

    try:
        update_system(al2023)
    except InstallError as e:
        logger.error(f"System package update failed: {e}")
        return 1

    for tool in tools:
        install_tool(tool)

    try:
        setup_kubectl_config()
    except (OSError, LookupError) as e:
        logger.error(f"kubectl configuration setup failed: {e}")
        return 1

    report = verify(tools)
    failed = [name for name, ok in report.items() if not ok]
    if failed:
        logger.error(f"Failed to install: {' '.join(failed)}")
        return 1

    logger.info("Bastion tools installation completed successfully!")
    return 0
