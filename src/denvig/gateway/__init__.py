"""Local reverse-proxy gateway: certificate coverage and nginx configuration."""

from .certs import (
    CertCoverage,
    domain_matches_cert,
    ensure_service_certs,
    find_cert_for_domain,
    generate_missing_certs,
    get_parent_domain,
    group_domains_for_cert_generation,
    resolve_ssl_paths,
)
from .configure import ConfigureGatewayResult, ConfigureServiceResult, configure_gateway, gateway_status
from .nginx import NginxConfigOptions, NginxController, ProxyController, generate_nginx_config

__all__ = [
    "CertCoverage",
    "ConfigureGatewayResult",
    "ConfigureServiceResult",
    "NginxConfigOptions",
    "NginxController",
    "ProxyController",
    "configure_gateway",
    "domain_matches_cert",
    "ensure_service_certs",
    "find_cert_for_domain",
    "gateway_status",
    "generate_missing_certs",
    "generate_nginx_config",
    "get_parent_domain",
    "group_domains_for_cert_generation",
    "resolve_ssl_paths",
]
