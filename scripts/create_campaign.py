"""
One-time campaign creation script.

Creates the on-chain campaign for the mirror given by --mirror-id, exactly as the
admin "approve" action does. Safe to re-run: an existing campaign is reported as
already created.
"""
import json

from bittensor.utils.btlogging import logging

from relayer.campaign_relayer import CampaignRelayer


def main():
    """Create the campaign for one mirror and print the result."""
    relayer = CampaignRelayer()
    if not relayer.config.mirror_id:
        logging.error("--mirror-id is required")
        raise SystemExit(2)
    result = relayer.create(relayer.config.mirror_id)
    print(json.dumps(result.to_dict(), indent=2))
    if not result.ok:
        raise SystemExit(1)


if __name__ == "__main__":
    main()
