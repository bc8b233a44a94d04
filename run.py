from mediaflow_merge.main import app

# Run the merge app
if __name__ == "__main__":
    import uvicorn

    uvicorn.run(app, host="0.0.0.0", port=7860)
