"""
Verify script.

Reconciles one mirror (--mirror-id) with chain state, or every pending_onchain
mirror when no id is given. Use after a "submitted, check back" result.
"""
import json

from relayer.campaign_relayer import CampaignRelayer


def main():
    """Verify one mirror, or sweep all pending_onchain mirrors."""
    relayer = CampaignRelayer()
    if relayer.config.mirror_id:
        results = [relayer.verify(relayer.config.mirror_id)]
    else:
        results = relayer.verify_pending()
    print(json.dumps([result.to_dict() for result in results], indent=2))


if __name__ == "__main__":
    main()
