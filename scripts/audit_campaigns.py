"""
Minted campaign audit script.

Checks every minted mirror against one on-chain index and fixes stale campaign ids.
Orphans are reported, never downgraded.
"""
import json

from relayer.campaign_relayer import CampaignRelayer


def main():
    """Audit all minted mirrors and print a summary."""
    relayer = CampaignRelayer()
    entries = relayer.audit()

    summary = {}
    for entry in entries:
        summary[entry.status.value] = summary.get(entry.status.value, 0) + 1
    report = {
        "summary": summary,
        "results": [
            {
                "id": entry.mirror_id,
                "status": entry.status.value,
                "details": entry.details,
                "campaignId": entry.campaign_id,
            }
            for entry in entries
        ],
    }
    print(json.dumps(report, indent=2))


if __name__ == "__main__":
    main()
