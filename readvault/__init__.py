"""readvault: permanent reader-mode snapshots of saved URLs."""
