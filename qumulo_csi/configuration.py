"""Configuration options for the Qumulo CSI controller."""

from oslo_config import cfg


# Configuration group name
CONF_GROUP = "qumulo"


def get_qumulo_opts():
    """Get Qumulo CSI configuration options.

    Returns:
        List of oslo_config options
    """
    return [
        # REST API Configuration
        cfg.PortOpt(
            "qumulo_default_rest_port",
            default=8000,
            help="Cluster REST API port used when a storage class omits restPort",
        ),
        cfg.IntOpt(
            "qumulo_api_timeout",
            default=30,
            min=1,
            max=300,
            help="API request timeout in seconds",
        ),
        cfg.BoolOpt(
            "qumulo_verify_ssl",
            default=False,
            help=(
                "Verify the cluster's TLS certificate. Clusters usually ship a "
                "self-signed certificate, so verification is off by default."
            ),
        ),
        cfg.StrOpt(
            "qumulo_minimum_version",
            default="4.2.4",
            help="Oldest Qumulo Core release the controller will provision on",
        ),
        # Volume Configuration
        cfg.StrOpt(
            "qumulo_volume_mode",
            default="0777",
            help="Permission mode applied to every newly provisioned volume directory",
        ),
    ]


def register_opts(conf, group=None):
    """Register Qumulo CSI configuration options.

    Args:
        conf: oslo_config.cfg.ConfigOpts instance
        group: Configuration group name (default: CONF_GROUP)
    """
    if group is None:
        group = CONF_GROUP
    conf.register_opts(get_qumulo_opts(), group=group)


def list_opts():
    """Return a list of Qumulo CSI options for oslo-config-generator.

    Returns:
        List of (group_name, options) tuples
    """
    return [
        (CONF_GROUP, get_qumulo_opts()),
    ]


def get_configuration(args=None):
    """Build a private ConfigOpts with the Qumulo options registered.

    Args:
        args: Command line arguments to parse (default: none)

    Returns:
        The ``qumulo`` option group of the new ConfigOpts
    """
    conf = cfg.ConfigOpts()
    register_opts(conf)
    conf(
        args=list(args or []),
        project="qumulo-csi",
        default_config_files=[],
        default_config_dirs=[],
    )
    return conf[CONF_GROUP]
