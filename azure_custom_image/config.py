"""
Sample configuration

Values come from, in order of precedence: explicit constructor
arguments, config.yaml, .env.secret (credentials and subscription only),
and finally the built-in defaults below.
"""

import os
from dataclasses import dataclass
from typing import Dict, List, Optional

import yaml
from dotenv import load_dotenv

from .naming import create_password, create_username

CONFIG_FILE = 'config.yaml'
SECRET_FILE = '.env.secret'

DEFAULT_DATA_DISKS = [
    {'lun': 1, 'size_gb': 100, 'name': 'disk-1'},
    {'lun': 2, 'size_gb': 50, 'name': 'disk-2'},
    {'lun': 3, 'size_gb': 60, 'name': 'disk-3'},
]
DEFAULT_SCRIPT_URIS = [
    'https://raw.githubusercontent.com/Azure/azure-libraries-for-net/master/Samples/Asset/install_apache.sh'
]


@dataclass
class DataDiskSpec:
    """A data disk slot: LUN, size and optional name/caching"""
    lun: int
    size_gb: Optional[int] = None
    name: Optional[str] = None
    caching: Optional[str] = None

    @classmethod
    def from_dict(cls, data: Dict) -> 'DataDiskSpec':
        return cls(
            lun=int(data['lun']),
            size_gb=data.get('size_gb'),
            name=data.get('name'),
            caching=data.get('caching'),
        )


def load_secrets(secret_file: str = SECRET_FILE) -> Dict[str, Optional[str]]:
    """Load credentials and subscription from the secret env file"""
    if os.path.exists(secret_file):
        load_dotenv(secret_file)
    else:
        print(f"Warning: {secret_file} not found. Using environment and generated credentials.")
    return {
        'admin_username': os.getenv('ADMIN_USERNAME'),
        'admin_password': os.getenv('ADMIN_PASSWORD'),
        'subscription_id': os.getenv('AZURE_SUBSCRIPTION_ID'),
    }


def load_config(config_file: str = CONFIG_FILE) -> Dict:
    """Load configuration from the YAML config file"""
    if os.path.exists(config_file):
        with open(config_file, 'r') as f:
            return yaml.safe_load(f) or {}
    else:
        print(f"Warning: {config_file} not found. Using default configuration.")
        return {}


@dataclass
class SampleConfig:
    """Sample configuration parameters"""
    project_name: str = None
    group_location: str = None
    location: str = None
    vm_size: str = None
    image_publisher: str = None
    image_offer: str = None
    image_sku: str = None
    image_version: str = None
    hyper_v_generation: str = None
    data_disks: List[DataDiskSpec] = None
    image_data_disk_caching: Dict[int, str] = None
    from_image_data_disk_caching: Dict[int, str] = None
    extra_data_disk: DataDiskSpec = None
    script_uris: List[str] = None
    script_command: str = None
    ssh_port: int = None
    sas_duration_minutes: int = None
    tags: Dict[str, str] = None
    log_dir: str = None
    admin_username: str = None
    admin_password: str = None
    subscription_id: str = None
    config_file: str = CONFIG_FILE
    secret_file: str = SECRET_FILE

    def __post_init__(self):
        config_data = load_config(self.config_file)
        secrets_data = load_secrets(self.secret_file)

        self.project_name = self.project_name or config_data.get('project_name', 'custom-image-sample')

        # The resource group and the resources inside it live in separate
        # regions unless configured otherwise
        self.group_location = self.group_location or config_data.get('group_location', 'southcentralus')
        self.location = self.location or config_data.get('location', 'eastus')

        self.vm_size = self.vm_size or config_data.get('vm_size', 'Standard_DS1_v2')
        self.image_publisher = self.image_publisher or config_data.get('image_publisher', 'Canonical')
        self.image_offer = self.image_offer or config_data.get('image_offer', 'UbuntuServer')
        self.image_sku = self.image_sku or config_data.get('image_sku', '16.04-LTS')
        self.image_version = self.image_version or config_data.get('image_version', 'latest')
        self.hyper_v_generation = self.hyper_v_generation or config_data.get('hyper_v_generation', 'V2')

        if self.data_disks is None:
            self.data_disks = [
                DataDiskSpec.from_dict(disk)
                for disk in config_data.get('data_disks', DEFAULT_DATA_DISKS)
            ]
        if self.image_data_disk_caching is None:
            self.image_data_disk_caching = _lun_map(config_data.get('image_data_disk_caching', {3: 'ReadOnly'}))
        if self.from_image_data_disk_caching is None:
            self.from_image_data_disk_caching = _lun_map(config_data.get(
                'from_image_data_disk_caching', {1: 'ReadWrite', 2: 'ReadOnly', 3: 'ReadWrite'}
            ))
        if self.extra_data_disk is None:
            self.extra_data_disk = DataDiskSpec.from_dict(
                config_data.get('extra_data_disk', {'lun': 4, 'size_gb': 50})
            )

        self.script_uris = self.script_uris or config_data.get('script_uris', DEFAULT_SCRIPT_URIS)
        self.script_command = self.script_command or config_data.get('script_command', 'bash install_apache.sh')
        self.ssh_port = self.ssh_port or config_data.get('ssh_port', 22)
        self.sas_duration_minutes = self.sas_duration_minutes or config_data.get('sas_duration_minutes', 24 * 60)
        self.log_dir = self.log_dir or config_data.get('log_dir', 'var/logs')

        if self.tags is None:
            self.tags = config_data.get('tags', {'sample': 'custom-image-from-vhd'})

        # Credentials: explicit, then secrets file / environment, then generated
        self.admin_username = self.admin_username or secrets_data['admin_username'] or create_username()
        self.admin_password = self.admin_password or secrets_data['admin_password'] or create_password()
        self.subscription_id = self.subscription_id or secrets_data['subscription_id']

    @property
    def log_file(self) -> str:
        return os.path.join(self.log_dir, f"{self.project_name}.log")


def _lun_map(data: Dict) -> Dict[int, str]:
    # YAML keys may come back as strings
    return {int(lun): caching for lun, caching in (data or {}).items()}
