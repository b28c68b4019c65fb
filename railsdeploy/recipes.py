"""Deployment tasks for the Rails application.

Setup tasks prepare a new version slot on a host (folder structure,
database.yml, MySQL database and user, Apache virtual host); ``deploy``
builds a release from git and switches it live.

Every task depends on ``environment``. Ruby commands run through
``rvm <ruby>@<gemset> do`` because each command gets its own remote shell.
"""

import json
import posixpath
import shlex

from railsdeploy.errors import ConfigurationError
from railsdeploy.graph import GraphRunner, TaskContext


# =============================================================================
# Templates
# =============================================================================

DATABASE_YML_TEMPLATE = """\
{runtime_env}:
  adapter: {adapter}
  encoding: {encoding}
  database: {database}
  username: {username}
  password: {password}
  host: {host}
  timeout: {timeout}
"""

VHOST_TEMPLATE = """\
<VirtualHost *:80>
  ServerAdmin user@your-website.com
  ServerName {fqdn}
  DocumentRoot {public_path}
  RailsEnv {runtime_env}
  <Directory {public_path}>
    Options -MultiViews
    AllowOverride all
  </Directory>
  PassengerMinInstances 5
  # Maintenance page
  ErrorDocument 503 /503.html
  RewriteEngine On
  RewriteCond %{{REQUEST_URI}} !.(css|gif|jpg|png)$
  RewriteCond %{{DOCUMENT_ROOT}}/503.html -f
  RewriteCond %{{SCRIPT_FILENAME}} !503.html
  RewriteRule ^.*$ - [redirect=503,last]
</VirtualHost>
"""

# Reads one key of the runtime environment section of a YAML file and prints
# it escaped for MySQL: ``literal`` inside '...', ``identifier`` inside `...`
RYAML_FUNCTION = (
    "ryaml() {{ {rvm} {ruby} do ruby -ryaml -e '"
    "value = ARGV[2..-1].inject(YAML.load(File.read(ARGV[1]))) {{|acc, key| acc[key] }}.to_s; "
    "puts(ARGV[0] == \"identifier\" ? value.gsub(96.chr) {{ 96.chr * 2 }} "
    ": value.gsub(Regexp.union(92.chr, 39.chr)) {{|c| c * 2 }})"
    "' \"$@\"; }}"
)

CREATE_DATABASE_SCRIPT = """\
set -e
{ryaml}
USERNAME=$(ryaml literal {credentials} {runtime_env} username)
PASSWORD=$(ryaml literal {credentials} {runtime_env} password)
DATABASE=$(ryaml identifier {credentials} {runtime_env} database)
SQL="CREATE DATABASE IF NOT EXISTS \\`$DATABASE\\`;"
SQL="$SQL CREATE USER IF NOT EXISTS '$USERNAME'@'localhost' IDENTIFIED BY '$PASSWORD';"
SQL="$SQL GRANT ALL PRIVILEGES ON \\`$DATABASE\\`.* TO '$USERNAME'@'localhost';"
SQL="$SQL FLUSH PRIVILEGES;"
sudo mysql -u{admin_user} -e "$SQL"
"""

CLEANUP_SCRIPT = "ls -1t | tail -n +{first_stale} | xargs -r rm -rf --"


# =============================================================================
# Helpers
# =============================================================================

def ruby_spec(ctx: TaskContext) -> str:
    return f"{ctx.config.ruby.version}@{ctx.config.ruby.gemset}"


def rvm_do(ctx: TaskContext, *argv: str) -> tuple[str, ...]:
    """Wrap a command so it runs under the configured ruby and gemset."""
    return (ctx.config.ruby.rvm_path, ruby_spec(ctx), "do", *argv)


def write_file(ctx: TaskContext, path: str, content: str, sudo: bool = False, echo: bool = True) -> None:
    """Queue a command writing ``content`` to a remote file via stdin."""
    argv: tuple[str, ...] = ("sh", "-c", 'cat > "$1"', "sh", path)
    if sudo:
        argv = ("sudo", *argv)
    ctx.queue(*argv, stdin=content, echo=echo, description=f"write {path}")


def make_shared_dir(ctx: TaskContext, relative: str) -> None:
    path = posixpath.join(ctx.target.shared_path, relative)
    ctx.queue_echo("mkdir", "-p", path)
    ctx.queue_echo("chmod", "g+rx,u+rwx", path)


def render_database_yml(ctx: TaskContext) -> str:
    """database.yml content for the target's runtime environment.

    Raises:
        ConfigurationError: If a database credential is not configured.
    """
    secrets = ctx.secrets
    missing = [
        env_var
        for env_var, value in (
            ("RAILSDEPLOY_DB_NAME", secrets.db_name),
            ("RAILSDEPLOY_DB_USERNAME", secrets.db_username),
            ("RAILSDEPLOY_DB_PASSWORD", secrets.db_password),
        )
        if not value
    ]
    if missing:
        raise ConfigurationError(
            f"Database credentials not configured: {', '.join(missing)} "
            "(set them in .env or the environment)"
        )
    db = ctx.config.database
    # JSON strings are valid YAML scalars and keep special characters intact
    return DATABASE_YML_TEMPLATE.format(
        runtime_env=ctx.target.runtime_env,
        adapter=db.adapter,
        encoding=db.encoding,
        database=json.dumps(secrets.db_name),
        username=json.dumps(secrets.db_username),
        password=json.dumps(secrets.db_password),
        host=db.host,
        timeout=db.timeout,
    )


def render_vhost(ctx: TaskContext) -> str:
    return VHOST_TEMPLATE.format(
        fqdn=ctx.target.fqdn,
        public_path=posixpath.join(ctx.target.current_path, "public"),
        runtime_env=ctx.target.runtime_env,
    )


# =============================================================================
# Environment
# =============================================================================

def environment(ctx: TaskContext) -> None:
    """Load the remote environment used by every other task."""
    ctx.invoke("rvm:use")


def rvm_use(ctx: TaskContext) -> None:
    """Select the configured ruby version and gemset."""
    ctx.queue_echo(ctx.config.ruby.rvm_path, "use", ruby_spec(ctx), "--create")


# =============================================================================
# New host setup
# =============================================================================

def setup_all(ctx: TaskContext) -> None:
    """Create new folder structure + database.yml + DB + VirtualHost, then deploy."""
    ctx.note("Setup folder structure on server")
    ctx.invoke("setup")
    ctx.note("Setup the DB (create user / DB)")
    ctx.invoke("setup:db")
    ctx.note("Setup Apache VirtualHost Configuration")
    ctx.invoke("setup:apache")
    ctx.note("Deploy Master for this version")
    ctx.invoke("deploy")
    ctx.note("Enable Apache host and restart Apache")
    ctx.invoke("apache:enable")


def setup(ctx: TaskContext) -> None:
    """Create the shared folder structure and database.yml."""
    make_shared_dir(ctx, "log")
    make_shared_dir(ctx, "config")
    ctx.queue_echo("touch", ctx.target.credentials_path)
    ctx.note("Populating 'shared/config/database.yml'")
    ctx.invoke("setup:db:database_yml")


def setup_database_yml(ctx: TaskContext) -> None:
    """Populate database.yml for the target's runtime environment."""
    content = render_database_yml(ctx)
    ctx.note("Populating database.yml")
    # Not echoed: the command carries the password on stdin
    write_file(ctx, ctx.target.credentials_path, content, echo=False)
    ctx.note("Done")


def setup_db(ctx: TaskContext) -> None:
    """Create the database and its user from database.yml."""
    ryaml = RYAML_FUNCTION.format(
        rvm=shlex.quote(ctx.config.ruby.rvm_path),
        ruby=shlex.quote(ruby_spec(ctx)),
    )
    ctx.note("Read database.yml and create DB and user")
    ctx.queue_script(
        CREATE_DATABASE_SCRIPT.format(
            ryaml=ryaml,
            credentials=shlex.quote(ctx.target.credentials_path),
            runtime_env=shlex.quote(ctx.target.runtime_env),
            admin_user=shlex.quote(ctx.config.database.admin_user),
        ),
        description="create database and user",
    )
    ctx.note("Done")


def setup_apache(ctx: TaskContext) -> None:
    """Create the Apache site file for this version."""
    site_file = posixpath.join(ctx.config.apache_sites_dir, f"{ctx.target.fqdn}.conf")
    ctx.note(f"Write Apache Virtual Host {site_file} (requires sudo)")
    write_file(ctx, site_file, render_vhost(ctx), sudo=True)
    ctx.note("Done")


def apache_enable(ctx: TaskContext) -> None:
    """Enable the new Apache site and reload Apache."""
    ctx.note("Enable Apache Virtual Host")
    ctx.queue_echo("sudo", "a2ensite", ctx.target.fqdn)
    ctx.note("Reload Apache")
    ctx.queue_echo("sudo", "service", "apache2", "reload")


# =============================================================================
# Deployment
# =============================================================================

def git_clone(ctx: TaskContext) -> None:
    """Clone the configured branch into the new release directory."""
    repo = ctx.config.repository
    ctx.note(f"Cloning {repo.url} ({repo.branch})")
    ctx.queue_echo(
        "git", "clone", "--depth", "1", "--branch", repo.branch, repo.url, ctx.release_path,
    )


def link_shared_paths(ctx: TaskContext) -> None:
    """Symlink shared paths into the new release."""
    ctx.note("Symlinking shared paths")
    for relative in ctx.config.shared_paths:
        release_item = posixpath.join(ctx.release_path, relative)
        parent = posixpath.dirname(release_item)
        ctx.queue("mkdir", "-p", parent)
        ctx.queue("rm", "-rf", release_item)
        ctx.queue_echo("ln", "-s", posixpath.join(ctx.target.shared_path, relative), release_item)


def bundle_install(ctx: TaskContext) -> None:
    """Install gems into the shared bundle directory."""
    ctx.note("Installing gem dependencies using Bundler")
    ctx.queue_echo(
        *rvm_do(
            ctx, "bundle", "install",
            "--deployment",
            "--without", "development:test",
            "--path", posixpath.join(ctx.target.shared_path, "bundle"),
        ),
        cwd=ctx.release_path,
    )


def rails_env(ctx: TaskContext, *argv: str) -> tuple[str, ...]:
    return ("env", f"RAILS_ENV={ctx.target.runtime_env}", *rvm_do(ctx, "bundle", "exec", *argv))


def db_migrate(ctx: TaskContext) -> None:
    """Migrate the database."""
    ctx.note("Migrating database")
    ctx.queue_echo(*rails_env(ctx, "rake", "db:migrate"), cwd=ctx.release_path)


def assets_precompile(ctx: TaskContext) -> None:
    """Precompile asset files."""
    ctx.note("Precompiling asset files")
    ctx.queue_echo(*rails_env(ctx, "rake", "assets:precompile"), cwd=ctx.release_path)


def cleanup(ctx: TaskContext) -> None:
    """Remove releases beyond the configured number to keep."""
    keep = ctx.config.keep_releases
    ctx.note(f"Cleaning up old releases (keeping {keep})")
    ctx.queue_script(
        CLEANUP_SCRIPT.format(first_stale=keep + 1),
        cwd=ctx.target.releases_path,
        description="remove stale releases",
    )


def deploy(ctx: TaskContext) -> None:
    """Deploy the current version to the server."""
    ctx.note(f"Preparing release {ctx.release_name}")
    ctx.queue_echo("mkdir", "-p", ctx.target.releases_path)
    ctx.invoke("git:clone")
    ctx.invoke("deploy:link_shared_paths")
    ctx.invoke("bundle:install")
    ctx.invoke("rails:assets_precompile:force")

    ctx.note("Updating the current symlink")
    ctx.queue_echo("ln", "-sfn", ctx.release_path, ctx.target.current_path)
    ctx.invoke("deploy:cleanup")

    with ctx.launch():
        ctx.note("Restarting application")
        ctx.queue("mkdir", "-p", posixpath.join(ctx.target.current_path, "tmp"))
        ctx.queue_echo("touch", posixpath.join(ctx.target.current_path, "tmp", "restart.txt"))


# =============================================================================
# Registry
# =============================================================================

ENV = ("environment",)

RECIPES = [
    ("environment", (), environment),
    ("rvm:use", (), rvm_use),
    ("setup:all", ENV, setup_all),
    ("setup", ENV, setup),
    ("setup:db:database_yml", ENV, setup_database_yml),
    ("setup:db", ENV, setup_db),
    ("setup:apache", ENV, setup_apache),
    ("apache:enable", ENV, apache_enable),
    ("git:clone", ENV, git_clone),
    ("deploy:link_shared_paths", ENV, link_shared_paths),
    ("bundle:install", ENV, bundle_install),
    ("rails:db_migrate", ENV, db_migrate),
    ("rails:assets_precompile:force", ENV, assets_precompile),
    ("deploy:cleanup", ENV, cleanup),
    ("deploy", ENV, deploy),
]


def register_recipes(runner: GraphRunner) -> GraphRunner:
    """Register every deployment task on ``runner``."""
    for name, dependencies, body in RECIPES:
        runner.task(name, depends=dependencies)(body)
    return runner


def create_runner() -> GraphRunner:
    """A runner with every deployment task registered."""
    return register_recipes(GraphRunner())
