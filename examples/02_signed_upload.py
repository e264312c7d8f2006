"""
Direct-to-storage upload with a signed policy
"""
import asyncio
from uploadpy import SigningUploader, FileHandle


async def main():
    async with SigningUploader(
        signing_url="https://app.example.com/api/sign",
        signing_method="POST",
        signing_headers={"Authorization": "Bearer <token>"},
    ) as uploader:
        
        # The signing server answers with {"endpoint": ...} or
        # {"region": ..., "bucket": ...} or {"bucket": ...} plus policy fields
        uploader.on('did_sign', lambda policy: print(f"Policy fields: {sorted(policy)}"))
        uploader.on('progress', lambda event: print(f"Progress: {event.percent:.1f}%"))
        
        file = await FileHandle.from_path("report.pdf")
        response = await uploader.upload(file, {"folder": "reports"})
        print(f"Storage response: {response!r}")


if __name__ == "__main__":
    asyncio.run(main())
