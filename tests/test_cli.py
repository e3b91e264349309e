from click.testing import CliRunner

import podship.cli as cli_module

DEPLOY_YAML = """
app_name: app
binary_name: app
environments:
  prod:
    host: vps.example.com
    user: deploy
    target_dir: /srv/app
    quadlet:
      service_name: app
      image: localhost/app:latest
      router:
        host: app.example.com
        internal_port: 8080
"""


class FakeDeployer:
    instances = []

    def __init__(self, **kwargs):
        self.kwargs = kwargs
        self.calls = []
        FakeDeployer.instances.append(self)

    def release(self, version=None, versioned=True):
        self.calls.append(("release", version, versioned))
        return 0

    def db_push(self):
        self.calls.append(("db_push",))
        return 2

    def db_pull(self):
        self.calls.append(("db_pull",))
        return 0

    def service_action(self, action):
        self.calls.append(("service", action))
        return 0

    def logs(self, use_podman=False, follow=True):
        self.calls.append(("logs", use_podman, follow))
        return 0

    def prune(self):
        self.calls.append(("prune",))
        return 0

    def rights(self, owner):
        self.calls.append(("rights", owner))
        return 1

    def traefik(self):
        self.calls.append(("traefik",))
        return 0


def _invoke(tmp_path, monkeypatch, args):
    config_file = tmp_path / "deploy.yaml"
    config_file.write_text(DEPLOY_YAML, encoding="utf-8")
    FakeDeployer.instances = []
    monkeypatch.setattr(cli_module, "Deployer", FakeDeployer)
    monkeypatch.chdir(tmp_path)
    return CliRunner().invoke(cli_module.main, args)


def test_release_passes_execution_context_and_version(tmp_path, monkeypatch):
    result = _invoke(tmp_path, monkeypatch, ["--dry-run", "--yes", "release", "prod", "--version", "v1.2.0"])

    assert result.exit_code == 0
    deployer = FakeDeployer.instances[0]
    assert deployer.calls == [("release", "v1.2.0", True)]
    assert deployer.kwargs["context"].dry_run is True
    assert deployer.kwargs["context"].assume_yes is True
    assert deployer.kwargs["environment"].unit.service_name == "app"


def test_run_skips_version_gate(tmp_path, monkeypatch):
    result = _invoke(tmp_path, monkeypatch, ["run", "prod"])

    assert result.exit_code == 0
    assert FakeDeployer.instances[0].calls == [("release", None, False)]


def test_exit_code_of_operation_is_propagated(tmp_path, monkeypatch):
    result = _invoke(tmp_path, monkeypatch, ["db", "push", "prod"])

    assert result.exit_code == 2
    assert FakeDeployer.instances[0].calls == [("db_push",)]


def test_service_commands_and_logs(tmp_path, monkeypatch):
    assert _invoke(tmp_path, monkeypatch, ["stop", "prod"]).exit_code == 0
    assert FakeDeployer.instances[0].calls == [("service", "stop")]

    assert _invoke(tmp_path, monkeypatch, ["logs", "prod", "--podman", "--no-follow"]).exit_code == 0
    assert FakeDeployer.instances[0].calls == [("logs", True, False)]


def test_unknown_environment_is_reported(tmp_path, monkeypatch):
    result = _invoke(tmp_path, monkeypatch, ["status", "staging"])

    assert result.exit_code == 1
    assert "Environment 'staging' not found. Available: prod" in result.output
    assert FakeDeployer.instances == []


def test_explicit_config_path_is_used(tmp_path, monkeypatch):
    other = tmp_path / "other.yaml"
    other.write_text(DEPLOY_YAML.replace("prod:", "staging:"), encoding="utf-8")

    result = _invoke(tmp_path, monkeypatch, ["--config", str(other), "db", "pull", "staging"])

    assert result.exit_code == 0
    assert FakeDeployer.instances[0].calls == [("db_pull",)]


def test_host_maintenance_commands(tmp_path, monkeypatch):
    assert _invoke(tmp_path, monkeypatch, ["enable", "prod"]).exit_code == 0
    assert FakeDeployer.instances[0].calls == [("service", "enable")]

    assert _invoke(tmp_path, monkeypatch, ["prune", "prod"]).exit_code == 0
    assert FakeDeployer.instances[0].calls == [("prune",)]

    assert _invoke(tmp_path, monkeypatch, ["rights", "prod", "container"]).exit_code == 1
    assert FakeDeployer.instances[0].calls == [("rights", "container")]

    assert _invoke(tmp_path, monkeypatch, ["traefik", "prod"]).exit_code == 0
    assert FakeDeployer.instances[0].calls == [("traefik",)]


def test_rights_rejects_unknown_owner(tmp_path, monkeypatch):
    result = _invoke(tmp_path, monkeypatch, ["rights", "prod", "root"])

    assert result.exit_code == 2
    assert FakeDeployer.instances == []


def test_non_integer_config_value_is_reported(tmp_path, monkeypatch):
    config_file = tmp_path / "bad.yaml"
    config_file.write_text(DEPLOY_YAML.replace("    target_dir:", "    ssh_port: twenty-two\n    target_dir:"), encoding="utf-8")

    result = _invoke(tmp_path, monkeypatch, ["--config", str(config_file), "status", "prod"])

    assert result.exit_code == 1
    assert "'environments.prod.ssh_port' must be an integer" in result.output
    assert FakeDeployer.instances == []


def test_init_writes_starter_config_once(tmp_path, monkeypatch):
    project = tmp_path / "My Shop"
    project.mkdir()
    monkeypatch.chdir(project)

    first = CliRunner().invoke(cli_module.main, ["init"])
    second = CliRunner().invoke(cli_module.main, ["init"])

    assert first.exit_code == 0
    assert 'binary_name: "my-shop-server"' in (project / "deploy.yaml").read_text(encoding="utf-8")
    assert second.exit_code == 1
    assert "deploy.yaml already exists" in second.output
