from podship.models import RateLimit, RouteDescriptor
from podship.services.labels import LabelCompiler


def _compile(route, default_resolver=None):
    return LabelCompiler().compile("app", route, default_resolver)


def test_route_without_rule_or_host_is_not_exposed():
    route = RouteDescriptor(internal_port=9000, compress=True, strip_prefix=True, path_prefix="/x")

    assert _compile(route) == []


def test_host_with_strip_prefix_scenario():
    route = RouteDescriptor(
        host="app.example.com", internal_port=8080, strip_prefix=True, path_prefix="/api"
    )

    assert _compile(route) == [
        "traefik.enable=true",
        "traefik.http.routers.app.priority=100",
        "traefik.http.routers.app.rule=Host(`app.example.com`)",
        "traefik.http.routers.app.entrypoints=websecure",
        "traefik.http.routers.app.tls.certresolver=myresolver",
        "traefik.http.middlewares.app-strip.stripprefix.prefixes=/api",
        "traefik.http.routers.app.middlewares=app-strip",
        "traefik.http.services.app.loadbalancer.server.port=8080",
    ]


def test_explicit_rule_wins_over_host():
    labels = _compile(RouteDescriptor(host="ignored.example.com", rule="PathPrefix(`/v1`)"))

    assert "traefik.http.routers.app.rule=PathPrefix(`/v1`)" in labels
    assert not any("ignored.example.com" in label for label in labels)


def test_middleware_chain_order_is_fixed():
    route = RouteDescriptor(
        host="app.example.com",
        headers=(("X-Env", "prod"),),
        compress=True,
        rate_limit=RateLimit(average=10, burst=20),
        ip_allowlist=("10.0.0.0/8", "192.168.1.1"),
        basic_auth_file="/etc/users",
        basic_auth_users=("admin:$apr1$x",),
        path_prefix="/api",
        strip_prefix=True,
    )

    labels = _compile(route)
    chain = [label for label in labels if label.startswith("traefik.http.routers.app.middlewares=")]

    assert chain == [
        "traefik.http.routers.app.middlewares="
        "app-strip,app-auth,app-authfile,app-ip,app-rate,app-compress,app-headers"
    ]
    assert "traefik.http.middlewares.app-rate.ratelimit.average=10" in labels
    assert "traefik.http.middlewares.app-rate.ratelimit.burst=20" in labels
    assert "traefik.http.middlewares.app-ip.ipallowlist.sourcerange=10.0.0.0/8,192.168.1.1" in labels
    assert labels[-1] == "traefik.http.services.app.loadbalancer.server.port=8080"


def test_no_chain_label_without_middlewares():
    labels = _compile(RouteDescriptor(host="app.example.com"))

    assert not any(".middlewares=" in label for label in labels)


def test_strip_prefix_requires_path_prefix_and_zero_rate_limit_is_skipped():
    labels = _compile(
        RouteDescriptor(host="app.example.com", strip_prefix=True, rate_limit=RateLimit(average=0))
    )

    assert not any("stripprefix" in label or "ratelimit" in label for label in labels)


def test_cert_resolver_fallbacks():
    explicit = _compile(RouteDescriptor(host="a.example.com", cert_resolver="custom"), "envdefault")
    env_default = _compile(RouteDescriptor(host="a.example.com"), "envdefault")

    assert "traefik.http.routers.app.tls.certresolver=custom" in explicit
    assert "traefik.http.routers.app.tls.certresolver=envdefault" in env_default


def test_custom_entrypoints_and_header_declaration_order():
    labels = _compile(
        RouteDescriptor(
            host="a.example.com",
            entrypoints=("web", "websecure"),
            headers=(("X-Zeta", "1"), ("X-Alpha", "2")),
        )
    )

    header_labels = [label for label in labels if "customrequestheaders" in label]
    assert "traefik.http.routers.app.entrypoints=web,websecure" in labels
    assert header_labels == [
        "traefik.http.middlewares.app-headers.headers.customrequestheaders.X-Zeta=1",
        "traefik.http.middlewares.app-headers.headers.customrequestheaders.X-Alpha=2",
    ]
