import boto3
from flask import current_app


def _s3():
    return boto3.client("s3", region_name=current_app.config.get("AWS_REGION"))


def upload_bytes(bucket, key, data):
    """Sube bytes directamente a S3"""
    _s3().put_object(Bucket=bucket, Key=key, Body=data)
    return f"s3://{bucket}/{key}"
