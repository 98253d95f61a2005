"""AWS services constants."""

# HTTP request headers understood by S3 PutObject, mapped to boto3 parameters
S3_PUT_HEADER_PARAMS = {
    'content-type': 'ContentType',
    'content-length': 'ContentLength',
    'cache-control': 'CacheControl',
    'content-disposition': 'ContentDisposition',
    'content-encoding': 'ContentEncoding',
    'content-language': 'ContentLanguage',
    'content-md5': 'ContentMD5',
    'expires': 'Expires',
    'x-amz-acl': 'ACL',
    'x-amz-storage-class': 'StorageClass',
    'x-amz-server-side-encryption': 'ServerSideEncryption',
}

# User metadata header prefix
S3_METADATA_HEADER_PREFIX = 'x-amz-meta-'

# Executor used to run blocking put_object calls
S3_DEFAULT_MAX_WORKERS = 8
