#!/usr/bin/env python3
"""
Azure custom image from VHD sample

Usage: python -m azure_custom_image

Requirements:
- AZURE_SUBSCRIPTION_ID in the environment, .env or .env.secret
- Credentials reachable by DefaultAzureCredential (e.g. `az login`)
"""

import argparse
import logging
import os
import sys

from azure.core.exceptions import ClientAuthenticationError
from azure.identity import DefaultAzureCredential
from dotenv import load_dotenv

from .client import AzureResourceClient
from .config import SampleConfig
from .workflow import ProvisioningWorkflow

MANAGEMENT_SCOPE = 'https://management.azure.com/.default'


def setup_logging(config: SampleConfig):
    """Setup logging configuration"""
    os.makedirs(config.log_dir, exist_ok=True)
    logging.basicConfig(
        level=logging.INFO,
        format='%(asctime)s - %(levelname)s - %(message)s',
        handlers=[
            logging.FileHandler(config.log_file),
            logging.StreamHandler(sys.stdout)
        ]
    )

    # Reduce Azure SDK logging verbosity
    logging.getLogger('azure').setLevel(logging.WARNING)
    logging.getLogger('azure.core.pipeline.policies.http_logging_policy').setLevel(logging.WARNING)
    logging.getLogger('azure.mgmt').setLevel(logging.WARNING)
    logging.getLogger('azure.identity').setLevel(logging.WARNING)
    logging.getLogger('urllib3').setLevel(logging.WARNING)
    logging.getLogger('paramiko').setLevel(logging.WARNING)


def create_client(config: SampleConfig) -> AzureResourceClient:
    """Authenticate and build the resource client.

    A token is requested up front so that credential problems surface
    here instead of in the middle of the workflow.
    """
    if not config.subscription_id:
        raise ValueError("AZURE_SUBSCRIPTION_ID is not set")

    credential = DefaultAzureCredential()
    credential.get_token(MANAGEMENT_SCOPE)
    return AzureResourceClient(credential, config.subscription_id)


def main(argv=None) -> int:
    """Main CLI interface"""
    parser = argparse.ArgumentParser(
        description='Create VMs from a custom image captured from un-managed VHDs, then clean up'
    )
    parser.parse_args(argv)

    load_dotenv()
    config = SampleConfig()
    setup_logging(config)
    logger = logging.getLogger(__name__)

    try:
        client = create_client(config)
    except (ValueError, ClientAuthenticationError) as e:
        logger.error(f"❌ Azure authentication failed: {e}")
        return 1

    logger.info(f"Project: {config.project_name}")
    logger.info(f"Location: {config.location} (resource group: {config.group_location})")

    result = ProvisioningWorkflow(client, config).run()

    if result.succeeded:
        logger.info("✅ Sample completed successfully")
    else:
        logger.info(f"Sample did not complete: {result.failed_step.name} failed")
    if result.cleanup_error is not None:
        logger.warning(f"⚠️  Resource group {result.context.names.resource_group} may need manual deletion")

    return 0


if __name__ == '__main__':
    sys.exit(main())
