##########################
# Configuration store tables
##########################

TABLE_CLASSIFICATION = "cc_ObjClassification"
"""Model classifications (groups of models)"""

TABLE_OBJECT = "cc_ObjDes"
"""Model definitions"""

TABLE_ATTRIBUTE = "cc_ObjAttDes"
"""Model attribute definitions"""

TABLE_OPERATION_LOG = "cc_OperationLog"
"""Audit log entries"""

##########################
# Record fields
##########################

FIELD_ID = "id"
FIELD_CLASSIFICATION_ID = "bk_classification_id"
FIELD_CLASSIFICATION_NAME = "bk_classification_name"
FIELD_OBJECT_ID = "bk_obj_id"
FIELD_OBJECT_NAME = "bk_obj_name"
FIELD_PROPERTY_ID = "bk_property_id"
FIELD_PROPERTY_NAME = "bk_property_name"
FIELD_BUSINESS_ID = "bk_biz_id"
FIELD_OP_TARGET = "op_target"
FIELD_METADATA = "metadata"
FIELD_LABEL = "label"

GLOBAL_BUSINESS_ID = 0
"""Business id of tenant independent entities and of the global grant tier"""
