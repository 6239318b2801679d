#!/usr/bin/env python3
"""
Example usage script for the Bibliographic Reconciliation API
"""
import asyncio
import httpx
from typing import List, Dict, Any


class ReconcilerClient:
    """Client for interacting with the Reconciliation API"""

    def __init__(self, base_url: str = "http://localhost:8000"):
        self.base_url = base_url
        self.client = httpx.AsyncClient(timeout=120.0)

    async def close(self):
        """Close the HTTP client"""
        await self.client.aclose()

    async def _post(self, path: str, payload: Dict[str, Any]) -> Dict[str, Any]:
        response = await self.client.post(f"{self.base_url}{path}", json=payload)
        response.raise_for_status()
        return response.json()

    async def detect_duplicates(self, records: List[Dict[str, Any]]) -> Dict[str, Any]:
        return await self._post("/duplicates/detect", {"records": records})

    async def scan_issues(self, records: List[Dict[str, Any]]) -> Dict[str, Any]:
        return await self._post("/issues/scan", {"records": records})

    async def auto_merge(self, group: Dict[str, Any], enrich: bool = True) -> Dict[str, Any]:
        """Build a merge draft for one duplicate group"""
        return await self._post("/merge/auto", {"group": group, "enrich": enrich})

    async def enrich(self, record: Dict[str, Any]) -> Dict[str, Any]:
        return await self._post("/enrich", {"record": record})

    async def verify(self, record: Dict[str, Any]) -> Dict[str, Any]:
        return await self._post("/verify", {"record": record})

    async def start_batch(self, records: List[Dict[str, Any]], operation: str = "verify",
                          delay: float = 1.0) -> str:
        result = await self._post("/verify-batch-async", {"records": records, "operation": operation, "delay": delay})
        return result["data"]["job_id"]

    async def job_status(self, job_id: str) -> Dict[str, Any]:
        response = await self.client.get(f"{self.base_url}/job-status/{job_id}")
        response.raise_for_status()
        return response.json()

    async def health_check(self) -> Dict[str, Any]:
        """Check API health"""
        response = await self.client.get(f"{self.base_url}/health")
        response.raise_for_status()
        return response.json()


SAMPLE_RECORDS = [
    {
        "key": "ABCD1234",
        "version": 12,
        "fields": {
            "itemType": "journalArticle",
            "title": "Membership inference attacks against machine learning models",
            "creators": [
                {"creatorType": "author", "firstName": "Reza", "lastName": "Shokri"},
                {"creatorType": "author", "firstName": "Marco", "lastName": "Stronati"}
            ],
            "date": "2017",
            "DOI": "10.1109/SP.2017.41"
        }
    },
    {
        "key": "EFGH5678",
        "version": 3,
        "fields": {
            "itemType": "journalArticle",
            "title": "Membership Inference Attacks Against Machine Learning Models",
            "creators": [
                {"creatorType": "author", "firstName": "R.", "lastName": "Shokri"},
                {"creatorType": "author", "firstName": "Vitaly", "lastName": "Shmatikov"}
            ],
            "publicationTitle": "2017 IEEE Symposium on Security and Privacy (SP)",
            "pages": "3-18",
            "DOI": "https://doi.org/10.1109/SP.2017.41"
        }
    },
    {
        "key": "IJKL9012",
        "version": 7,
        "fields": {
            "itemType": "journalArticle",
            "title": "Privacy in deep learning: A survey",
            "creators": [{"creatorType": "author", "firstName": "F", "lastName": "Last1"}],
            "date": "2020"
        }
    }
]


async def main():
    """Main example function"""
    client = ReconcilerClient()

    try:
        print("📚 Bibliographic Reconciliation API - Example Usage")
        print("=" * 60)

        print("\n1. Checking API health...")
        health = await client.health_check()
        print(f"✅ API Status: {health['data']['status']}")

        print("\n2. Detecting duplicates...")
        detection = await client.detect_duplicates(SAMPLE_RECORDS)
        groups = detection['data']
        for group in groups:
            print(f"   {group['id']} matched by {group['match_reason']}")

        print("\n   Scanning for quality issues...")
        scan = await client.scan_issues(SAMPLE_RECORDS)
        for entry in scan['data']:
            print(f"   {entry['record']['key']}: {len(entry['issues'])} issue(s)")

        if groups:
            print("\n3. Building a merge draft for the first group...")
            draft = await client.auto_merge(groups[0])
            for field, source in draft['data']['field_sources'].items():
                print(f"   {field}: from {source}")

        print("\n4. Verifying a record with a placeholder author...")
        report = await client.verify(SAMPLE_RECORDS[2])
        print(f"   Overall status: {report['data']['overall_status']}")
        for error in report['data']['findings']['errors']:
            print(f"   - {error}")

        print("\n5. Running a batch enrichment...")
        job_id = await client.start_batch(SAMPLE_RECORDS, operation="enrich")
        while True:
            status = (await client.job_status(job_id))['data']
            print(f"   {status['progress']}% - {status['message']}")
            if status['status'] in ("completed", "failed", "cancelled"):
                break
            await asyncio.sleep(2)

        print("\n🎉 Example completed successfully!")

    except Exception as e:
        print(f"❌ Error: {str(e)}")
        print("\nMake sure the API server is running:")
        print("python run_server.py")

    finally:
        await client.close()


if __name__ == "__main__":
    print("Starting Bibliographic Reconciliation Example...")
    print("Make sure the API server is running on http://localhost:8000")
    print()

    asyncio.run(main())
