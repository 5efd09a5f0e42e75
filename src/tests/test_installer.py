import subprocess
import unittest
from unittest.mock import Mock, patch, call

from src.bastion import installer
from src.bastion.installer import InstallError, Tool


class FakeTool(Tool):
    def __init__(self, name, present=False, installs=True, raises=False):
        self.name = name
        self.binary = name
        self.present = present
        self.installs = installs
        self.raises = raises
        self.install_calls = 0

    def is_installed(self):
        return self.present

    def version(self):
        return f"{self.name} 1.0"

    def install(self):
        self.install_calls += 1
        if self.raises:
            raise InstallError("download failed")
        self.present = self.installs


class TestInstallTool(unittest.TestCase):
    def test_already_installed_is_skipped(self):
        tool = FakeTool("helm", present=True)
        self.assertTrue(installer.install_tool(tool))
        self.assertEqual(tool.install_calls, 0)

    def test_missing_tool_is_installed(self):
        tool = FakeTool("velero")
        self.assertTrue(installer.install_tool(tool))
        self.assertEqual(tool.install_calls, 1)

    def test_install_error_reports_failure(self):
        tool = FakeTool("kubectl", raises=True)
        self.assertFalse(installer.install_tool(tool))

    def test_install_that_leaves_no_binary_reports_failure(self):
        tool = FakeTool("kubectl", installs=False)
        self.assertFalse(installer.install_tool(tool))

    def test_verify_aggregates(self):
        report = installer.verify([FakeTool("aws", present=True), FakeTool("helm")])
        self.assertEqual(report, {"aws": True, "helm": False})


class TestRunInstall(unittest.TestCase):
    def test_requires_root(self):
        with patch('src.bastion.installer.os.geteuid', return_value=1000), \
             patch('src.bastion.installer.update_system') as update_mock:
            self.assertEqual(installer.run_install(tools=[]), 1)
        update_mock.assert_not_called()

    def test_success_when_all_tools_present(self):
        tools = [FakeTool("ansible"), FakeTool("kubectl", present=True)]
        with patch('src.bastion.installer.os.geteuid', return_value=0), \
             patch('src.bastion.installer.update_system') as update_mock, \
             patch('src.bastion.installer.setup_kubectl_config') as kube_mock:
            self.assertEqual(installer.run_install(tools=tools, al2023=True), 0)
        update_mock.assert_called_once_with(True)
        kube_mock.assert_called_once()

    def test_failure_when_a_tool_is_missing(self):
        tools = [FakeTool("ansible"), FakeTool("velero", raises=True), FakeTool("helm")]
        with patch('src.bastion.installer.os.geteuid', return_value=0), \
             patch('src.bastion.installer.update_system'), \
             patch('src.bastion.installer.setup_kubectl_config'):
            self.assertEqual(installer.run_install(tools=tools, al2023=False), 1)
        # later tools still run after a failure
        self.assertEqual(tools[2].install_calls, 1)

    def test_kubectl_config_failure_is_logged_not_raised(self):
        tool = FakeTool("helm", present=True)
        for exc in (LookupError("no such user: 'ec2-user'"), PermissionError(13, "Permission denied")):
            with patch('src.bastion.installer.os.geteuid', return_value=0), \
                 patch('src.bastion.installer.update_system'), \
                 patch('src.bastion.installer.setup_kubectl_config', side_effect=exc), \
                 self.assertLogs('src.bastion.installer', level='ERROR') as logs:
                self.assertEqual(installer.run_install(tools=[tool], al2023=False), 1)
            self.assertIn("kubectl configuration setup failed", logs.output[-1])

    def test_system_update_failure_stops_early(self):
        tool = FakeTool("helm")
        with patch('src.bastion.installer.os.geteuid', return_value=0), \
             patch('src.bastion.installer.update_system', side_effect=InstallError("yum broke")):
            self.assertEqual(installer.run_install(tools=[tool], al2023=False), 1)
        self.assertEqual(tool.install_calls, 0)


class TestCommands(unittest.TestCase):
    def test_run_wraps_called_process_error(self):
        err = subprocess.CalledProcessError(2, ["yum", "update"], stderr="boom")
        with patch('src.bastion.installer.subprocess.run', side_effect=err):
            with self.assertRaises(InstallError):
                installer.run(["yum", "update"])

    def test_run_wraps_missing_binary(self):
        with patch('src.bastion.installer.subprocess.run', side_effect=FileNotFoundError()):
            with self.assertRaises(InstallError):
                installer.run(["dnf", "install"])

    def test_update_system_al2023_uses_dnf(self):
        with patch('src.bastion.installer.run') as run_mock:
            installer.update_system(al2023=True)
        cmds = [c.args[0] for c in run_mock.call_args_list]
        self.assertEqual(cmds[0], ["yum", "update", "-y"])
        self.assertIn(["dnf", "install", "-y", "curl", "tar", "python3", "git", "unzip", "wget", "python3-pip"], cmds)
        self.assertIn(call(["rpm", "-e", "--nodeps", "curl-minimal"], check=False), run_mock.call_args_list)

    def test_update_system_al2_uses_yum(self):
        with patch('src.bastion.installer.run') as run_mock:
            installer.update_system(al2023=False)
        cmds = [c.args[0] for c in run_mock.call_args_list]
        self.assertFalse(any(c[0] == "dnf" for c in cmds))
        self.assertEqual(cmds[-1], ["pip3", "install", "kubernetes", "PyYAML", "jsonpatch"])

    def test_aws_cli_v1_counts_as_missing(self):
        proc = subprocess.CompletedProcess(["aws", "--version"], 0, stdout="aws-cli/1.18.147 Python/2.7", stderr="")
        with patch('src.bastion.installer.shutil.which', return_value="/usr/bin/aws"), \
             patch('src.bastion.installer.run', return_value=proc):
            self.assertFalse(installer.AwsCli().is_installed())

    def test_aws_cli_v2_counts_as_installed(self):
        proc = subprocess.CompletedProcess(["aws", "--version"], 0, stdout="aws-cli/2.15.0 Python/3.11", stderr="")
        with patch('src.bastion.installer.shutil.which', return_value="/usr/bin/aws"), \
             patch('src.bastion.installer.run', return_value=proc):
            self.assertTrue(installer.AwsCli().is_installed())

    def test_ansible_skips_collections_without_galaxy(self):
        which = Mock(side_effect=lambda b: "/usr/bin/ansible" if b == "ansible" else None)
        with patch('src.bastion.installer.shutil.which', which), \
             patch('src.bastion.installer.run') as run_mock:
            installer.Ansible(al2023=True).install()
        run_mock.assert_called_once_with(["dnf", "install", "-y", "ansible-core"])

    def test_ansible_failure_raises(self):
        with patch('src.bastion.installer.shutil.which', return_value=None), \
             patch('src.bastion.installer.run'):
            with self.assertRaises(InstallError):
                installer.Ansible(al2023=False).install()


def test_is_amazon_linux_2023(tmp_path):
    release = tmp_path / "system-release"
    release.write_text("Amazon Linux release 2023 (Amazon Linux)\n")
    assert installer.is_amazon_linux_2023(str(release))
    release.write_text("Amazon Linux release 2 (Karoo)\n")
    assert not installer.is_amazon_linux_2023(str(release))
    assert not installer.is_amazon_linux_2023(str(tmp_path / "missing"))


def test_setup_kubectl_config_creates_dirs(tmp_path):
    root_home = tmp_path / "root"
    root_home.mkdir()
    installer.setup_kubectl_config({"root": str(root_home), "ec2-user": str(tmp_path / "nope")})
    assert (root_home / ".kube").is_dir()
    assert not (tmp_path / "nope").exists()
