"""Guest deprovisioning over SSH"""

import logging

import paramiko

logger = logging.getLogger(__name__)

DEPROVISION_COMMAND = 'sudo -S waagent -deprovision+user --force'


def deprovision_linux_vm(host: str, port: int, username: str, password: str,
                         timeout: int = 30) -> bool:
    """Remove machine-specific state from a Linux guest before generalization.

    Runs the Azure Linux agent deprovisioning command over SSH with
    password authentication. Failures are logged and reported through the
    return value; the VM can still be deallocated and generalized, the
    resulting image is just not cleanly deprovisioned.
    """
    ssh = paramiko.SSHClient()
    ssh.set_missing_host_key_policy(paramiko.AutoAddPolicy())

    try:
        logger.info(f"🧹 Trying to de-provision: {host}")
        ssh.connect(
            hostname=host,
            port=port,
            username=username,
            password=password,
            timeout=timeout
        )

        stdin, stdout, stderr = ssh.exec_command(DEPROVISION_COMMAND)
        # sudo -S reads the password from stdin
        stdin.write(f"{password}\n")
        stdin.flush()

        exit_status = stdout.channel.recv_exit_status()
        output = stdout.read().decode('utf-8')
        error_output = stderr.read().decode('utf-8')

        if output:
            logger.info(output.strip())
        if exit_status != 0:
            logger.warning(f"⚠️  Deprovisioning exited with status {exit_status}: {error_output.strip()}")
            return False
        return True

    except (paramiko.SSHException, OSError) as e:
        logger.warning(f"⚠️  Could not de-provision {host}: {e}")
        return False
    finally:
        ssh.close()
