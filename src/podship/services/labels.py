"""Reverse-proxy label compiler."""

from typing import List, Optional

from podship.constants import (
    DEFAULT_CERT_RESOLVER,
    DEFAULT_ENTRYPOINT,
    DEFAULT_INTERNAL_PORT,
    ROUTER_PRIORITY,
)
from podship.models import RouteDescriptor


class LabelCompiler:
    """Turns a RouteDescriptor into an ordered list of Traefik labels.

    The output is a pure function of the inputs. Middlewares are always
    emitted in a fixed order (strip, auth, auth file, allow-list, rate
    limit, compress, headers) regardless of how the route was declared.
    """

    def compile(
        self,
        service_name: str,
        route: RouteDescriptor,
        default_resolver: Optional[str] = None,
    ) -> List[str]:
        if not route.exposed:
            return []

        router = f"traefik.http.routers.{service_name}"
        middleware = "traefik.http.middlewares"

        labels = ["traefik.enable=true", f"{router}.priority={ROUTER_PRIORITY}"]

        rule = route.rule or f"Host(`{route.host}`)"
        labels.append(f"{router}.rule={rule}")

        entrypoints = route.entrypoints or (DEFAULT_ENTRYPOINT,)
        labels.append(f"{router}.entrypoints={','.join(entrypoints)}")

        resolver = route.cert_resolver or default_resolver or DEFAULT_CERT_RESOLVER
        labels.append(f"{router}.tls.certresolver={resolver}")

        chain: List[str] = []

        if route.strip_prefix and route.path_prefix:
            name = f"{service_name}-strip"
            labels.append(f"{middleware}.{name}.stripprefix.prefixes={route.path_prefix}")
            chain.append(name)

        if route.basic_auth_users:
            name = f"{service_name}-auth"
            users = ",".join(route.basic_auth_users)
            labels.append(f"{middleware}.{name}.basicauth.users={users}")
            chain.append(name)

        if route.basic_auth_file:
            name = f"{service_name}-authfile"
            labels.append(f"{middleware}.{name}.basicauth.usersfile={route.basic_auth_file}")
            chain.append(name)

        if route.ip_allowlist:
            name = f"{service_name}-ip"
            ranges = ",".join(route.ip_allowlist)
            labels.append(f"{middleware}.{name}.ipallowlist.sourcerange={ranges}")
            chain.append(name)

        if route.rate_limit is not None and route.rate_limit.average > 0:
            name = f"{service_name}-rate"
            labels.append(f"{middleware}.{name}.ratelimit.average={route.rate_limit.average}")
            labels.append(f"{middleware}.{name}.ratelimit.burst={route.rate_limit.burst}")
            chain.append(name)

        if route.compress:
            name = f"{service_name}-compress"
            labels.append(f"{middleware}.{name}.compress=true")
            chain.append(name)

        if route.headers:
            name = f"{service_name}-headers"
            for key, value in route.headers:
                labels.append(f"{middleware}.{name}.headers.customrequestheaders.{key}={value}")
            chain.append(name)

        if chain:
            labels.append(f"{router}.middlewares={','.join(chain)}")

        port = route.internal_port or DEFAULT_INTERNAL_PORT
        labels.append(f"traefik.http.services.{service_name}.loadbalancer.server.port={port}")
        return labels
