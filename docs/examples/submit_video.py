import requests
import time
import os

API_BASE = "http://localhost:8080"


def process_file(file_path, title="Sample clip", privacy="public"):
    if not os.path.exists(file_path):
        print(f"File not found: {file_path}")
        return

    # 1. Upload video with its metadata
    print(f"📤 Uploading: {os.path.basename(file_path)}...")
    with open(file_path, "rb") as f:
        resp = requests.post(
            f"{API_BASE}/upload",
            data={"title": title, "privacy": privacy},
            files={"file": f},
        )

    if resp.status_code != 201:
        print(f"❌ Failed to upload: {resp.text}")
        return

    video_id = resp.json()["id"]
    stream_url = f"{API_BASE}{resp.json()['stream_url']}"
    print(f"✅ Video job created: {video_id}")

    # 2. Wait for encoding to finish
    while True:
        status = requests.get(f"{API_BASE}/api/videos/{video_id}").json()["status"]
        print(f"⏳ Status: {status}")

        if status == "encoded":
            break
        if status == "failed":
            print("❌ Encoding failed. Upload the file again to retry.")
            return

        time.sleep(2)

    # 3. Fetch the first kilobyte with a range request, then the whole file
    head = requests.get(stream_url, headers={"Range": "bytes=0-1023"})
    print(f"🔎 Range request: {head.status_code} {head.headers.get('Content-Range')}")

    output_name = f"video_{video_id}.webm"
    with requests.get(stream_url, stream=True) as result_resp:
        with open(output_name, "wb") as f:
            for chunk in result_resp.iter_content(chunk_size=1024 * 1024):
                f.write(chunk)

    print(f"💾 Encoded video saved to: {output_name}")


if __name__ == "__main__":
    # Example usage
    # process_file("path/to/your/clip.mp4")
    print("Tip: Call process_file('your_clip.mp4') to test.")
