"""
Upload files as multipart/form-data
"""
import asyncio
from uploadpy import Uploader, FileHandle, UploadError, UploadAborted


async def main():
    async with Uploader(url="https://example.com/upload", param_namespace="post") as uploader:
        
        # Progress events carry loaded/total bytes and a percent
        uploader.on('progress', lambda event: print(f"Progress: {event.percent:.1f}%"))
        uploader.on('did_upload', lambda response: print(f"Done: {response}"))
        
        # Single file -> "post[file]"
        photo = await FileHandle.from_path("photo.jpg")
        await uploader.upload(photo, {"caption": "Vacation"})
        
        # Several files -> "post[file][]" once per file
        docs = [await FileHandle.from_path(p) for p in ("a.pdf", "b.pdf")]
        try:
            await uploader.upload(docs)
        except UploadError as e:
            print(f"Upload failed ({e.status}): {e.error_thrown}")
        
        # Abort a running upload
        task = uploader.upload(FileHandle.from_bytes("big.bin", b"\0" * 10_000_000))
        uploader.abort()
        try:
            await task
        except UploadAborted:
            print("Aborted")


if __name__ == "__main__":
    asyncio.run(main())
